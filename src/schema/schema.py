"""
JSON Schema documents used by the webmention sender.

Two schemas ship next to this module:

    ghost_post_schema.json        Ghost post.* webhook payloads, checked by
                                  the webhook receiver before an event is
                                  published on the bus
    mention_metadata_schema.json  Type rules for the id and string metadata
                                  fields accepted by Mention.create

Both are read once at import time. A missing or broken schema file makes the
import fail, so the service never starts without its validation rules.
"""
import json
from pathlib import Path
from typing import Dict, Any

SCHEMA_DIR = Path(__file__).parent


def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """
    Read one schema file from SCHEMA_DIR.

    Args:
        schema_filename: File name inside the schema package

    Returns:
        The parsed schema, usable with jsonschema validators

    Raises:
        FileNotFoundError: The file is not in SCHEMA_DIR.
        json.JSONDecodeError: The file is not valid JSON.
    """
    schema_path = SCHEMA_DIR / schema_filename

    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    try:
        with open(schema_path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise json.JSONDecodeError(
            f"Invalid JSON in schema file {schema_filename}: {e.msg}",
            e.doc,
            e.pos
        ) from e


# Ghost post.* webhook payload (post.current / post.previous)
GHOST_POST_SCHEMA = _load_schema("ghost_post_schema.json")

# Type constraints for Mention.create input (ids and string metadata)
MENTION_METADATA_SCHEMA = _load_schema("mention_metadata_schema.json")
