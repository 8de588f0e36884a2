"""Domain events emitted by Mention."""
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class MentionCreatedEvent:
    """A new mention was minted (never raised when loading an existing one)."""
    mention_id: str
    source: str
    target: str
    timestamp: datetime
