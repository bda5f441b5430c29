#!/usr/bin/env python3
"""
RIS Live Feed Collection

Maintains one subscription to the RIPE RIS Live WebSocket feed with:
- A reader thread that decodes frames into a bounded queue
- One transparent reconnect + resubscribe attempt per read failure
- A timer thread sending heartbeats and enforcing the session deadline
- A kill flag that every thread observes at loop boundaries

State machine: CONNECTING -> ACTIVE -> (RECONNECTING -> ACTIVE)* -> DEAD.
DEAD is absorbing and always closes the connection.

The queue put blocks while the queue is full, so a slow consumer stalls
the reader. While stalled nothing reads from the socket and the feed
server may drop the connection, which then surfaces as a read failure and
a reconnect.
"""

import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect as ws_connect

from bgp_validator.models import (
    ClientDirective, ClientMessage, ServerMessage,
    decode_server_message, make_ping, make_subscribe,
)
from bgp_validator.utils.error_handling import DecodeError, StreamConnectionError
from bgp_validator.utils.timeout_config import TimeoutType, get_timeout

DEFAULT_FEED_HOST = "ris-live.ripe.net"
DEFAULT_QUEUE_SIZE = 1024

# Errors raised by a live connection on recv/send/close
CONNECTION_ERRORS = (WebSocketException, OSError)


class StreamState(Enum):
    """Feed subscription states"""

    CONNECTING = "connecting"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    DEAD = "dead"


def make_subscribe_url(client_id: str, host: str = DEFAULT_FEED_HOST) -> str:
    """Build the feed URL, e.g. wss://ris-live.ripe.net:443/v1/ws/?client=my-app"""
    return f"wss://{host}:443/v1/ws/?{urlencode({'client': client_id})}"


def default_connect(url: str, open_timeout: float):
    """Dial the feed with the websockets threading client"""
    return ws_connect(url, open_timeout=open_timeout)


class RisLiveStream:
    """
    Owns a single RIS Live subscription.

    Threads: a reader (frames -> queue, reconnects) and a timer (heartbeat,
    deadline). The connection and heartbeat schedule are guarded by one
    lock; the kill flag is a threading.Event read without it.
    """

    def __init__(self,
                 subscribe_url: str,
                 directive: Optional[ClientDirective] = None,
                 duration: float = 3600,
                 queue_size: int = DEFAULT_QUEUE_SIZE,
                 read_timeout: Optional[float] = None,
                 heartbeat_interval: Optional[float] = None,
                 connect_timeout: Optional[float] = None,
                 connect: Optional[Callable[[str, float], Any]] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Dial the feed and start the reader and timer threads

        Args:
            subscribe_url: Feed URL (see make_subscribe_url)
            directive: Subscription filter sent with ris_subscribe
            duration: Session deadline in seconds
            queue_size: Capacity of the decoded message queue
            read_timeout: Per-read deadline in seconds
            heartbeat_interval: Seconds between ping directives
            connect_timeout: WebSocket opening handshake timeout
            connect: Connection factory (url, timeout) -> connection

        Raises:
            StreamConnectionError: initial dial failed
        """
        self.logger = logger or logging.getLogger(__name__)
        self.subscribe_url = subscribe_url
        self.directive = directive or ClientDirective()
        self.duration = duration
        self.read_timeout = read_timeout or get_timeout(TimeoutType.FEED_READ)
        self.heartbeat_interval = heartbeat_interval or get_timeout(TimeoutType.FEED_HEARTBEAT)
        self.connect_timeout = connect_timeout or get_timeout(TimeoutType.FEED_CONNECT)
        self._connect = connect or default_connect

        self.queue: "queue.Queue[ServerMessage]" = queue.Queue(maxsize=queue_size)
        self.message_count = 0
        self.reconnect_count = 0
        self.decode_errors = 0

        self._lock = threading.RLock()
        self._dead = threading.Event()
        self._state = StreamState.CONNECTING

        self._conn = self._dial()

        now = time.monotonic()
        self._deadline = now + duration
        self._next_heartbeat = now + self.heartbeat_interval

        self._reader = threading.Thread(target=self._receive, name="ris-live-reader", daemon=True)
        self._timer = threading.Thread(target=self._tick, name="ris-live-timer", daemon=True)
        self._reader.start()
        self._timer.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.kill()
        self.join(timeout=self.read_timeout)
        return False

    @property
    def state(self) -> StreamState:
        return self._state

    def _dial(self):
        try:
            conn = self._connect(self.subscribe_url, self.connect_timeout)
        except CONNECTION_ERRORS as e:
            raise StreamConnectionError(
                f"Failed to connect to {self.subscribe_url}",
                guidance="Check network connectivity to the RIS Live feed",
                technical_details=str(e),
            )
        self.logger.info(
            f"Connected to {self.subscribe_url} "
            f"(local={getattr(conn, 'local_address', None)}, "
            f"remote={getattr(conn, 'remote_address', None)})"
        )
        return conn

    def _send_locked(self, message: ClientMessage) -> bool:
        """Send a directive on the current connection; caller holds the lock."""
        try:
            self._conn.send(message.to_json())
            return True
        except CONNECTION_ERRORS as e:
            self.logger.error(f"Failed to send {message.type}: {e}")
            return False

    def send(self, message: ClientMessage) -> bool:
        """Send a directive (e.g. ris_unsubscribe) on the live connection"""
        with self._lock:
            if self.killed():
                return False
            return self._send_locked(message)

    def _subscribe(self) -> bool:
        with self._lock:
            if self.killed():
                return False
            if not self._send_locked(make_subscribe(self.directive)):
                return False
            self._state = StreamState.ACTIVE
            self.logger.info(f"Subscribed with filter {self.directive.to_dict()}")
            return True

    def _reconnect(self) -> bool:
        """Replace the connection once; a failed attempt kills the stream."""
        with self._lock:
            if self.killed():
                return False

            self._state = StreamState.RECONNECTING
            self._close_connection()

            try:
                self._conn = self._dial()
            except StreamConnectionError as e:
                self.logger.error(f"Reconnect failed: {e.technical_details}")
                self.kill()
                return False

            if not self._subscribe():
                self.kill()
                return False

            self.reconnect_count += 1
            self.logger.info(f"Reconnected to feed (reconnects: {self.reconnect_count})")
            return True

    def _receive(self):
        """Reader thread entry point; an unexpected failure kills the stream."""
        try:
            self._read_frames()
        except Exception:
            self.logger.exception("Reader thread failed, stopping stream")
            self.kill()
            raise

    def _read_frames(self):
        """Frames -> decoded messages -> queue"""
        if not self._subscribe() and not self._reconnect():
            return

        while not self.killed():
            try:
                frame = self._conn.recv(timeout=self.read_timeout)
            except CONNECTION_ERRORS as e:
                if self.killed():
                    break
                self.logger.info(f"Feed read failed ({type(e).__name__}: {e}), reconnecting")
                if not self._reconnect():
                    break
                continue

            try:
                message = decode_server_message(frame)
            except DecodeError as e:
                self.decode_errors += 1
                self.logger.warning(f"Skipping undecodable frame: {e.message}")
                continue

            self.message_count += 1
            self._enqueue(message)

        self.logger.debug("Reader thread exiting")

    def _enqueue(self, message: ServerMessage) -> bool:
        """Blocking put, retried in read-timeout slices so a kill is noticed."""
        while not self.killed():
            try:
                self.queue.put(message, timeout=self.read_timeout)
                return True
            except queue.Full:
                self.logger.warning(
                    f"Message queue full ({self.queue.maxsize}), reader stalled by slow consumer"
                )
        return False

    def _tick(self):
        """Timer thread: session deadline and heartbeat"""
        while not self.killed():
            now = time.monotonic()
            if now >= self._deadline:
                self.logger.info(f"Session deadline of {self.duration}s reached")
                self.kill()
                break
            if now >= self._next_heartbeat:
                self._heartbeat()
                continue
            self._dead.wait(min(self._deadline, self._next_heartbeat) - now)

        self.logger.debug("Timer thread exiting")

    def _heartbeat(self):
        with self._lock:
            if self.killed():
                return
            self.logger.info("Sending ping to RIS Live")
            self._send_locked(make_ping())
            self._next_heartbeat = time.monotonic() + self.heartbeat_interval

    def _close_connection(self):
        try:
            self._conn.close()
        except CONNECTION_ERRORS as e:
            self.logger.debug(f"Connection close warning: {e}")

    def kill(self):
        """Force the DEAD state from any thread. Idempotent."""
        self._dead.set()
        with self._lock:
            if self._state is StreamState.DEAD:
                return
            self._state = StreamState.DEAD
            self._close_connection()
        self.logger.info(
            f"Stream stopped after {self.message_count} messages "
            f"and {self.reconnect_count} reconnects"
        )

    def killed(self) -> bool:
        return self._dead.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the stream is dead; returns False on timeout."""
        return self._dead.wait(timeout)

    def join(self, timeout: Optional[float] = None):
        """Wait for the reader and timer threads to exit"""
        for thread in (self._reader, self._timer):
            if thread is not threading.current_thread():
                thread.join(timeout)

    def get(self, timeout: Optional[float] = None) -> Optional[ServerMessage]:
        """Dequeue the next message; None if nothing arrived within timeout."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_stats(self) -> Dict[str, Any]:
        return {
            'state': self._state.value,
            'messages_received': self.message_count,
            'reconnects': self.reconnect_count,
            'decode_errors': self.decode_errors,
            'queue_depth': self.queue.qsize(),
        }
