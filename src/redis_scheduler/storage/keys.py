"""
Module: keys.py
Description: Key codec binding a schedule record to its timer key.

A schedule lives under two Redis keys derived from the same identity:

- record key ``{ns}:{type}:{id}``: the JSON record, never expires
- timer key ``{ns}-ref:{type}:{id}``: empty value whose TTL is the delay

Expiry notifications arrive for every key in the database, so decoding
must reject foreign or malformed names by returning None rather than
raising.

Key Components:
- ScheduleKey: Immutable (type, id) identity
- KeyCodec: Encode/decode between identities and Redis key names
- new_schedule_id(): 128-bit URL-safe random id

Dependencies: secrets, re, dataclasses
"""

import re
import secrets
from dataclasses import dataclass
from typing import Optional

DEFAULT_NAMESPACE = "rsch"
DEFAULT_SCHEDULE_TYPE = "default"
SEPARATOR = ":"
TIMER_SUFFIX = "-ref"

# Types end up inside SCAN patterns, so glob characters and the separator are excluded
SCHEDULE_TYPE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")
SCHEDULE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def new_schedule_id() -> str:
    """Generate a fresh schedule id (16 random bytes, URL-safe base64)."""
    return secrets.token_urlsafe(16)


def is_valid_schedule_type(schedule_type: str) -> bool:
    return bool(schedule_type) and SCHEDULE_TYPE_PATTERN.fullmatch(schedule_type) is not None


@dataclass(frozen=True)
class ScheduleKey:
    """Logical identity of a schedule."""

    type: str
    id: str

    def __str__(self) -> str:
        return f"{self.type}{SEPARATOR}{self.id}"


class KeyCodec:
    """
    Deterministic, reversible mapping between identities and key names.

    Attributes:
        namespace: Record key prefix
        timer_namespace: Timer key prefix (namespace + '-ref')

    Example:
        >>> codec = KeyCodec()
        >>> key = ScheduleKey("email", "Yq3v...")
        >>> codec.timer_key(key)
        'rsch-ref:email:Yq3v...'
        >>> codec.decode_timer_key("rsch-ref:email:Yq3v...") == key
        True
        >>> codec.decode_timer_key("session:123") is None
        True
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        if not namespace or SEPARATOR in namespace:
            raise ValueError("namespace must be a non-empty string without ':'")

        self.namespace = namespace
        self.timer_namespace = namespace + TIMER_SUFFIX

    def record_key(self, key: ScheduleKey) -> str:
        return f"{self.namespace}{SEPARATOR}{key.type}{SEPARATOR}{key.id}"

    def timer_key(self, key: ScheduleKey) -> str:
        return f"{self.timer_namespace}{SEPARATOR}{key.type}{SEPARATOR}{key.id}"

    def decode_timer_key(self, name: str) -> Optional[ScheduleKey]:
        """
        Decode a timer key name back to its identity.

        Args:
            name: Key name as delivered by an expiry notification

        Returns:
            ScheduleKey if the name has the timer shape, None otherwise
        """
        return self._decode(name, self.timer_namespace)

    def decode_record_key(self, name: str) -> Optional[ScheduleKey]:
        """Decode a record key name back to its identity, or None."""
        return self._decode(name, self.namespace)

    def record_pattern(self, schedule_type: Optional[str] = None) -> str:
        """SCAN match pattern for record keys of one type (or all types)."""
        return f"{self.namespace}{SEPARATOR}{schedule_type or '*'}{SEPARATOR}*"

    def timer_pattern(self, schedule_type: Optional[str] = None) -> str:
        """SCAN match pattern for timer keys of one type (or all types)."""
        return f"{self.timer_namespace}{SEPARATOR}{schedule_type or '*'}{SEPARATOR}*"

    def parse_reference(self, reference: str) -> ScheduleKey:
        """
        Resolve an API path reference to an identity.

        Accepts either a full timer key, as returned when the schedule was
        created, or a bare id which is taken to belong to the default type.

        Raises:
            ValueError: If the reference cannot name a schedule
        """
        if not reference or not isinstance(reference, str):
            raise ValueError("schedule reference must be a non-empty string")

        if reference.startswith(self.timer_namespace + SEPARATOR):
            key = self.decode_timer_key(reference)
            if key is None:
                raise ValueError(f"Malformed schedule key: {reference}")
            return key

        if SCHEDULE_ID_PATTERN.fullmatch(reference) is None:
            raise ValueError(f"Malformed schedule key: {reference}")

        return ScheduleKey(DEFAULT_SCHEDULE_TYPE, reference)

    def _decode(self, name: Optional[str], prefix: str) -> Optional[ScheduleKey]:
        if not isinstance(name, str):
            return None

        head = prefix + SEPARATOR
        if not name.startswith(head):
            return None

        schedule_type, sep, schedule_id = name[len(head):].partition(SEPARATOR)
        if not sep:
            return None
        if not is_valid_schedule_type(schedule_type):
            return None
        if SCHEDULE_ID_PATTERN.fullmatch(schedule_id) is None:
            return None

        return ScheduleKey(schedule_type, schedule_id)
