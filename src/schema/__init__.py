"""Schema Package - JSON Schema Loading and Validation.

This package provides centralized loading and access to JSON schemas
used throughout the webmention sender for validating data structures.

Available Schemas:
    GHOST_POST_SCHEMA: Ghost post.* webhook payloads received by the
        webhook receiver.
    MENTION_METADATA_SCHEMA: Type constraints for the identifier and
        string metadata fields accepted by Mention.create.

Usage Patterns:
    from schema import GHOST_POST_SCHEMA
    validate(instance=payload, schema=GHOST_POST_SCHEMA)
"""
from .schema import GHOST_POST_SCHEMA, MENTION_METADATA_SCHEMA

__all__ = ["GHOST_POST_SCHEMA", "MENTION_METADATA_SCHEMA"]
