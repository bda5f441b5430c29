"""
BGP Validator Data Models

Message shapes exchanged with the RIS Live feed, plus the verdict and fact
types produced by validation.

Client-bound and server-bound messages are two distinct envelopes sharing a
``type`` discriminator. Only the fields the pipeline needs are modelled;
decoding ignores everything else the feed sends.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bgp_validator.utils.error_handling import DecodeError, ValidationError

AS_SET_SENTINEL = -1
MAX_AS_NUMBER = 4294967295

BGP_MESSAGE_TYPES = ["UPDATE", "OPEN", "NOTIFICATION", "KEEPALIVE", "RIS_PEER_STATE"]
REQUIRE_KEYS = ["announcements", "withdrawals"]

# Client directive types
RIS_SUBSCRIBE = "ris_subscribe"
RIS_UNSUBSCRIBE = "ris_unsubscribe"
REQUEST_RRC_LIST = "request_rrc_list"
PING = "ping"

# Server message types
RIS_MESSAGE = "ris_message"
RIS_ERROR = "ris_error"
PONG = "pong"


class Verdict(Enum):
    """Tri-state RPKI origin validation result"""
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


class EmissionPolicy(Enum):
    """How validation verdicts gate facts on their way to the result sink"""
    ALL = "all"  # Emit every fact, validator not consulted
    VALID_ONLY = "valid"  # Emit only facts with a valid verdict
    ANNOTATE = "annotate"  # Emit every fact together with its verdict


@dataclass
class ClientDirective:
    """
    Filter carried by client directives.

    All fields are optional; an empty directive is valid.
    """
    host: Optional[str] = None  # Only messages from this collector (e.g. "rrc21")
    bgp_type: Optional[str] = None  # One of BGP_MESSAGE_TYPES
    require: Optional[str] = None  # One of REQUIRE_KEYS

    def __post_init__(self):
        if self.bgp_type is not None and self.bgp_type not in BGP_MESSAGE_TYPES:
            raise ValidationError(
                f"Unknown BGP message type '{self.bgp_type}'",
                "type",
                f"Use one of: {', '.join(BGP_MESSAGE_TYPES)}",
            )
        if self.require is not None and self.require not in REQUIRE_KEYS:
            raise ValidationError(
                f"Unknown require key '{self.require}'",
                "require",
                f"Use one of: {', '.join(REQUIRE_KEYS)}",
            )

    def to_dict(self) -> Dict[str, str]:
        """Wire form; unset fields are omitted."""
        data = {}
        if self.host:
            data["host"] = self.host
        if self.bgp_type:
            data["type"] = self.bgp_type
        if self.require:
            data["require"] = self.require
        return data


@dataclass
class ClientMessage:
    """Envelope for messages sent to the feed"""
    type: str
    data: Optional[ClientDirective] = None

    def to_dict(self) -> Dict[str, Any]:
        message = {"type": self.type}
        if self.data is not None:
            message["data"] = self.data.to_dict()
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def make_subscribe(directive: Optional[ClientDirective] = None) -> ClientMessage:
    """Subscribe request; an empty directive subscribes to everything."""
    return ClientMessage(RIS_SUBSCRIBE, directive or ClientDirective())


def make_unsubscribe(directive: Optional[ClientDirective] = None) -> ClientMessage:
    return ClientMessage(RIS_UNSUBSCRIBE, directive or ClientDirective())


def make_request_rrc_list() -> ClientMessage:
    return ClientMessage(REQUEST_RRC_LIST)


def make_ping() -> ClientMessage:
    """Application-level ping; the feed answers with a pong message."""
    return ClientMessage(PING)


@dataclass
class Announcement:
    """A BGP announcement; only the announced prefixes are kept"""
    prefixes: List[str] = field(default_factory=list)


def decode_path_hop(token: Any) -> int:
    """
    Decode one AS_PATH element.

    Integers (and numeric strings) decode to the ASN. Anything else, notably
    an AS-SET such as [64496, 64497] or "{64496,64497}", decodes to
    AS_SET_SENTINEL.
    """
    if isinstance(token, bool):
        return AS_SET_SENTINEL
    if isinstance(token, str):
        try:
            token = int(token.strip())
        except ValueError:
            return AS_SET_SENTINEL
    if isinstance(token, int) and 0 <= token <= MAX_AS_NUMBER:
        return token
    return AS_SET_SENTINEL


@dataclass
class ServerEvent:
    """Payload of a ris_message: the AS_PATH and the announcements"""
    path: List[int] = field(default_factory=list)
    announcements: List[Announcement] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerEvent':
        raw_path = data.get("path") or []
        if not isinstance(raw_path, list):
            raw_path = []

        raw_announcements = data.get("announcements") or []
        if not isinstance(raw_announcements, list):
            raw_announcements = []

        announcements = []
        for raw in raw_announcements:
            if not isinstance(raw, dict):
                continue
            prefixes = raw.get("prefixes") or []
            if not isinstance(prefixes, list):
                continue
            announcements.append(
                Announcement([prefix for prefix in prefixes if isinstance(prefix, str)])
            )

        return cls(
            path=[decode_path_hop(token) for token in raw_path],
            announcements=announcements,
        )

    def get_origin_as(self) -> int:
        """Origin AS (last hop), or AS_SET_SENTINEL when there is no single origin."""
        if not self.path:
            return AS_SET_SENTINEL
        return self.path[-1]

    def get_prefixes(self, only_ipv4: bool = False) -> List[str]:
        """All announced prefixes in order, optionally restricted to IPv4."""
        prefixes = []
        for announcement in self.announcements:
            if only_ipv4:
                prefixes.extend(p for p in announcement.prefixes if is_ipv4(p))
            else:
                prefixes.extend(announcement.prefixes)
        return prefixes


def is_ipv4(prefix: str) -> bool:
    """IPv6 prefixes never contain '.', IPv4 prefixes always do."""
    return "." in prefix


@dataclass
class ServerMessage:
    """
    Envelope for messages received from the feed.

    ``data`` is decoded only when the payload is an object; ``payload`` keeps
    the raw value (e.g. the collector list answering request_rrc_list).
    """
    type: str
    data: Optional[ServerEvent] = None
    payload: Any = None

    @property
    def is_pong(self) -> bool:
        return self.type == PONG

    @property
    def is_error(self) -> bool:
        return self.type == RIS_ERROR


def decode_server_message(raw: Union[bytes, str]) -> ServerMessage:
    """
    Decode one feed frame.

    Raises:
        DecodeError: frame is not a JSON object with a string ``type``
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Frame is not valid UTF-8: {e}")

    try:
        message = json.loads(raw)
    except ValueError as e:
        raise DecodeError(f"Frame is not valid JSON: {e}", raw[:200])
    except RecursionError:
        raise DecodeError("Frame is nested too deeply", raw[:200])

    if not isinstance(message, dict):
        raise DecodeError("Frame is not a JSON object", raw[:200])

    message_type = message.get("type")
    if not isinstance(message_type, str):
        raise DecodeError("Frame has no message type", raw[:200])

    payload = message.get("data")
    data = ServerEvent.from_dict(payload) if isinstance(payload, dict) else None

    return ServerMessage(type=message_type, data=data, payload=payload)


@dataclass(frozen=True)
class Fact:
    """One accepted (origin AS, prefix) pair"""
    origin_asn: int
    prefix: str

    def to_line(self, verdict: Optional[Verdict] = None) -> str:
        if verdict is None:
            return f"{self.origin_asn} {self.prefix} "
        return f"{self.origin_asn} {self.prefix} {verdict.value} "
