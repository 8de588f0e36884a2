"""Mention records: the validated Mention entity and its domain events."""
from mentions.events import MentionCreatedEvent
from mentions.mention import Mention, MentionState, generate_mention_id

__all__ = ["Mention", "MentionCreatedEvent", "MentionState", "generate_mention_id"]
