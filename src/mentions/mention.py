"""
Mention entity.

A Mention records one source → target webmention relationship together with
the metadata fetched from the source page (title, author, excerpt, ...).

Construction goes through Mention.create(), which validates and normalizes
every field at once: it either returns a complete entity or raises
ValidationError. The entity is a frozen value; the only changes are

    with_source_metadata()  replace all source metadata as one group
    delete()                soft delete, returns the DELETED copy

both of which return a new Mention and leave existing references untouched.

Domain events are kept in an outbox (mention.events). The persistence layer
drains it with pull_events() after a successful write.

Serialization:
    to_dict() produces the storage record, using the same keys that
    create() accepts:

        id, source, target, timestamp, payload, resourceId, sourceTitle,
        sourceSiteTitle, sourceAuthor, sourceExcerpt, sourceFavicon,
        sourceFeaturedImage

Usage:
    >>> mention = Mention.create({
    ...     "source": "https://other.example/post",
    ...     "target": "https://blog.example.com/my-post/",
    ...     "sourceTitle": "A reply",
    ... })
    >>> len(mention.pull_events())
    1
"""
import logging
import math
import re
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from jsonschema import Draft7Validator

from indieweb.errors import ValidationError
from indieweb.link_tracking import url_host
from mentions.events import MentionCreatedEvent
from schema import MENTION_METADATA_SCHEMA
from mentions.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

MAX_METADATA_LENGTH = 2000

MENTION_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

_METADATA_VALIDATOR = Draft7Validator(MENTION_METADATA_SCHEMA)


class MentionState(Enum):
    ACTIVE = "active"
    DELETED = "deleted"


def generate_mention_id(now: Optional[datetime] = None) -> str:
    """Generate an ObjectId-compatible identifier.

    4-byte big-endian seconds timestamp followed by 8 random bytes,
    as 24 lowercase hex digits.
    """
    now = now or datetime.now(timezone.utc)
    seconds = int(now.timestamp()) & 0xFFFFFFFF
    return f"{seconds:08x}{secrets.token_hex(8)}"


def copy_json_value(value: Any, path: str = "payload") -> Any:
    """Deep-copy a JSON value, rejecting anything JSON cannot represent.

    Raises:
        ValidationError: For non-string keys, NaN/infinity or non-JSON types.
    """
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValidationError(f"{path} contains a non-finite number")
        return value
    if isinstance(value, Mapping):
        copied = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"{path} has a non-string key: {key!r}")
            copied[key] = copy_json_value(item, f"{path}.{key}")
        return copied
    if isinstance(value, (list, tuple)):
        return [copy_json_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
    raise ValidationError(f"{path} contains a non-JSON value of type {type(value).__name__}")


def _check_field_types(data: Mapping[str, Any]) -> None:
    """Validate id and string metadata types against MENTION_METADATA_SCHEMA.

    Falsy values count as absent and are not validated.
    """
    properties = MENTION_METADATA_SCHEMA["properties"]
    instance = {key: data[key] for key in properties if data.get(key)}

    errors = sorted(_METADATA_VALIDATOR.iter_errors(instance), key=lambda e: list(e.path))
    if not errors:
        return

    name = errors[0].path[0] if errors[0].path else "mention"
    if name in ("id", "resourceId"):
        raise ValidationError(f"Invalid ID provided for Mention: {name}")
    raise ValidationError(f"{name} must be a string")


def _parse_id(value: str) -> str:
    if not isinstance(value, str) or not MENTION_ID_PATTERN.match(value):
        raise ValidationError("Invalid ID provided for Mention")
    return value.lower()


def _parse_url(value: Any, name: str) -> str:
    """Parse an absolute URL, normalizing scheme and host case."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be an absolute URL")

    try:
        parsed = urlsplit(value.strip())
        host = url_host(value.strip())
    except ValueError as e:
        raise ValidationError(f"{name} is not a valid URL: {e}") from e

    if not parsed.scheme or not host:
        raise ValidationError(f"{name} must be an absolute URL: {value}")

    netloc = host
    if "@" in parsed.netloc:
        netloc = f"{parsed.netloc.rsplit('@', 1)[0]}@{host}"
    return urlunsplit((parsed.scheme.lower(), netloc, parsed.path or "/", parsed.query, parsed.fragment))


def _parse_optional_url(value: Any, name: str) -> Optional[str]:
    if not value:
        return None
    return _parse_url(value, name)


def _parse_timestamp(value: Any, clock: Clock) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return clock.now()
    if isinstance(value, bool):
        raise ValidationError("Invalid Date")

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValidationError(f"Invalid Date: {value!r}") from e

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid Date: {value!r}") from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    raise ValidationError(f"Invalid Date: {value!r}")


def _clean_string(value: Optional[str]) -> Optional[str]:
    """Trim and truncate an already type-checked metadata string."""
    if not value:
        return None
    cleaned = value.strip()[:MAX_METADATA_LENGTH]
    return cleaned or None


def _parse_source_metadata(metadata: Mapping[str, Any], source: str) -> Dict[str, Any]:
    """Validate the source metadata group and return it as Mention field values."""
    _check_field_types(metadata)

    source_title = _clean_string(metadata.get("sourceTitle"))
    if source_title is None:
        source_title = url_host(source)

    return {
        "source_title": source_title,
        "source_site_title": _clean_string(metadata.get("sourceSiteTitle")),
        "source_author": _clean_string(metadata.get("sourceAuthor")),
        "source_excerpt": _clean_string(metadata.get("sourceExcerpt")),
        "source_favicon": _parse_optional_url(metadata.get("sourceFavicon"), "sourceFavicon"),
        "source_featured_image": _parse_optional_url(metadata.get("sourceFeaturedImage"), "sourceFeaturedImage"),
    }


@dataclass(frozen=True, eq=False)
class Mention:
    """A validated webmention record. Build with Mention.create().

    Two mentions are equal when they share an id; a metadata update or a
    delete yields a new value of the same mention.
    """
    id: str
    source: str
    target: str
    timestamp: datetime
    payload: Any
    resource_id: Optional[str]
    source_title: str
    source_site_title: Optional[str] = None
    source_author: Optional[str] = None
    source_excerpt: Optional[str] = None
    source_favicon: Optional[str] = None
    source_featured_image: Optional[str] = None
    state: MentionState = MentionState.ACTIVE
    events: List[Any] = field(default_factory=list, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mention):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def create(cls, data: Mapping[str, Any], clock: Optional[Clock] = None) -> "Mention":
        """Validate data and build a Mention.

        A creation event is recorded only when data carries no id.

        Args:
            data: Mapping with the storage record keys (see module docstring).
                  source and target are required.
            clock: Source of the default timestamp. Defaults to SystemClock.

        Raises:
            ValidationError: Bad id, URL, timestamp, payload or metadata type.
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Mention data must be a mapping")
        clock = clock or SystemClock()

        is_new = not data.get("id")
        mention_id = generate_mention_id(clock.now()) if is_new else _parse_id(data["id"])

        source = _parse_url(data.get("source"), "source")
        target = _parse_url(data.get("target"), "target")
        timestamp = _parse_timestamp(data.get("timestamp"), clock)

        payload = data.get("payload")
        payload = copy_json_value(payload) if payload is not None else None

        resource_id = _parse_id(data["resourceId"]) if data.get("resourceId") else None

        mention = cls(
            id=mention_id,
            source=source,
            target=target,
            timestamp=timestamp,
            payload=payload,
            resource_id=resource_id,
            **_parse_source_metadata(data, source),
        )

        if is_new:
            mention.events.append(MentionCreatedEvent(
                mention_id=mention.id,
                source=mention.source,
                target=mention.target,
                timestamp=clock.now(),
            ))
            logger.debug(f"Created mention {mention.id}: source={source}, target={target}")
        return mention

    def with_source_metadata(self, metadata: Mapping[str, Any]) -> "Mention":
        """Return a copy with every source metadata field replaced from metadata.

        Keys are the storage record keys (sourceTitle, sourceSiteTitle, ...).
        Missing keys clear the field; a missing title falls back to the
        source host.
        """
        return replace(self, events=list(self.events), **_parse_source_metadata(metadata, self.source))

    def delete(self) -> "Mention":
        """Return this mention in the DELETED state, all other fields kept."""
        return replace(self, state=MentionState.DELETED, events=list(self.events))

    @property
    def deleted(self) -> bool:
        return self.state is MentionState.DELETED

    @staticmethod
    def is_deleted(mention: "Mention") -> bool:
        return mention.state is MentionState.DELETED

    def pull_events(self) -> List[Any]:
        """Return pending domain events and clear the outbox."""
        pending = list(self.events)
        self.events.clear()
        return pending

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "timestamp": self.timestamp.isoformat(),
            "payload": copy_json_value(self.payload) if self.payload is not None else None,
            "resourceId": self.resource_id,
            "sourceTitle": self.source_title,
            "sourceSiteTitle": self.source_site_title,
            "sourceAuthor": self.source_author,
            "sourceExcerpt": self.source_excerpt,
            "sourceFavicon": self.source_favicon,
            "sourceFeaturedImage": self.source_featured_image,
        }
