"""
In-memory stand-ins for the feed connection used by the stream tests.
"""

import json
import queue
import threading

_CLOSED = object()


def event_frame(path, prefixes, message_type="ris_message"):
    """JSON text frame for a ris_message with one announcement"""
    return json.dumps({
        "type": message_type,
        "data": {
            "timestamp": 1700000000.0,
            "peer": "192.0.2.1",
            "peer_asn": "64500",
            "host": "rrc00",
            "type": "UPDATE",
            "path": path,
            "announcements": [{"next_hop": "192.0.2.1", "prefixes": prefixes}],
        },
    })


PONG_FRAME = json.dumps({"type": "pong", "data": None})


class FakeConnection:
    """
    Scripted WebSocket connection.

    Items in ``frames`` are returned by recv() in order; exception instances
    are raised instead. Once the script is exhausted recv() times out.
    """

    def __init__(self, frames=(), local_address=("127.0.0.1", 50000),
                 remote_address=("193.0.19.1", 443)):
        self.inbox = queue.Queue()
        for frame in frames:
            self.inbox.put(frame)
        self.sent = []
        self.closed = False
        self.close_calls = 0
        self.local_address = local_address
        self.remote_address = remote_address
        self._lock = threading.Lock()

    def recv(self, timeout=None):
        if self.closed:
            raise OSError("connection closed")
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("timed out while waiting for a message")
        if item is _CLOSED:
            raise OSError("connection closed")
        if isinstance(item, BaseException):
            raise item
        return item

    def send(self, message):
        if self.closed:
            raise OSError("connection closed")
        with self._lock:
            self.sent.append(json.loads(message))

    def close(self):
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.inbox.put(_CLOSED)

    def sent_types(self):
        with self._lock:
            return [message["type"] for message in self.sent]


class FakeDialer:
    """Connection factory handing out prepared connections in order"""

    def __init__(self, *connections):
        self.connections = list(connections)
        self.dialed = []

    def __call__(self, url, timeout):
        self.dialed.append(url)
        if not self.connections:
            raise OSError("connection refused")
        return self.connections.pop(0)
