"""
Ghost Webhook Receiver - Flask Application.

This module implements a Flask-based webhook receiver that turns Ghost post
webhooks into content change events for the webmention sending service.

Architecture:
    1. Receive JSON payload via POST /webhook/ghost/<event_name>
    2. Check the event name is one of the supported post events
    3. Verify the X-Ghost-Signature header when a webhook secret is configured
    4. Validate against the Ghost post webhook schema (JSON Schema Draft 7)
    5. Convert post.current / post.previous into a ContentChangeEvent
    6. Publish it on the event bus under the event name
    7. Return appropriate HTTP status code

Ghost webhooks:
    Configure one webhook per event in Ghost Admin → Integrations:
        post.published         → https://sender.example.com/webhook/ghost/post.published
        post.published.edited  → https://sender.example.com/webhook/ghost/post.published.edited
        post.unpublished       → https://sender.example.com/webhook/ghost/post.unpublished

    Ghost only includes changed attributes in post.previous, so a missing
    previous html or status means it did not change.

Error Handling:
    - 200: Event published
    - 400: Non-JSON body or schema validation failure
    - 401: Signature missing or invalid
    - 404: Unsupported event name
    - 500: Unexpected error (details only in the log)
"""
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from flask import Flask, request, jsonify, current_app
from jsonschema import validate, ValidationError

from config import load_config, read_secret_file
from schema import GHOST_POST_SCHEMA
from sender.services import POST_EVENTS, ContentChangeEvent, InProcessEventBus

# Logging is configured in sender.py main() - this module uses the configured logger
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Ghost-Signature"


class GhostPostValidationError(Exception):
    """Raised when a webhook payload does not match the Ghost post schema."""


def create_app(event_bus: InProcessEventBus, config: Optional[Dict[str, Any]] = None) -> Flask:
    """Factory function to create and configure the Flask application.

    Args:
        event_bus: Bus that receives a ContentChangeEvent per accepted webhook
        config: Optional configuration dictionary (if None, will be loaded from config.yml)

    Returns:
        Configured Flask application instance with webhook and health endpoints

    Example:
        >>> bus = InProcessEventBus()
        >>> app = create_app(bus, config={})
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()

    app.config["EVENT_BUS"] = event_bus

    # Webhook secret: config value > secret file
    webhook_config = config.get("webhook", {}) or {}
    secret = webhook_config.get("secret")
    if not secret and webhook_config.get("secret_file"):
        secret = read_secret_file(webhook_config["secret_file"])
    app.config["WEBHOOK_SECRET"] = secret
    if secret:
        logger.info("Ghost webhook signature verification enabled")
    else:
        logger.warning("No Ghost webhook secret configured, signatures will not be verified")

    @app.route("/webhook/ghost/<event_name>", methods=["POST"])
    def receive_ghost_webhook(event_name: str):
        """Webhook endpoint for Ghost post lifecycle events.

        Success Response (200):
            {
              "status": "success",
              "event": "post.published",
              "post_id": "507f1f77bcf86cd799439011"
            }
        """
        if event_name not in POST_EVENTS:
            logger.warning(f"Received unsupported Ghost webhook event: {event_name}")
            return jsonify({"status": "error", "message": f"Unsupported event: {event_name}"}), 404

        secret = current_app.config["WEBHOOK_SECRET"]
        if secret and not verify_ghost_signature(request.get_data(), request.headers.get(SIGNATURE_HEADER), secret):
            logger.warning(f"Rejected Ghost webhook with invalid signature: event={event_name}")
            return jsonify({"status": "error", "message": "Invalid signature"}), 401

        if not request.is_json:
            logger.error("Received non-JSON payload")
            return jsonify({"error": "Content-Type must be application/json"}), 400

        try:
            payload = request.get_json(silent=True)
            if payload is None:
                logger.error("Received malformed JSON payload")
                return jsonify({"error": "Malformed JSON body"}), 400

            validate_ghost_post(payload)
            event = build_content_change_event(payload)

            logger.info(
                f"Received Ghost webhook: event={event_name}, id={event.resource_id}, "
                f"status={event.previous_status} -> {event.status}"
            )
            logger.debug(f"Ghost webhook payload: {json.dumps(payload, indent=2)}")

            current_app.config["EVENT_BUS"].publish(event_name, event)

            return jsonify({
                "status": "success",
                "event": event_name,
                "post_id": event.resource_id,
            }), 200

        except GhostPostValidationError as e:
            logger.error(f"Payload validation failed: {str(e)}")
            return jsonify({
                "status": "error",
                "message": "Invalid Ghost post payload",
                "details": str(e)
            }), 400

        except Exception as e:
            logger.error(f"Unexpected error processing Ghost webhook: {str(e)}", exc_info=True)
            return jsonify({
                "status": "error",
                "message": "Internal server error"
            }), 500

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint for monitoring and load balancers.

        Example:
            $ curl http://localhost:5000/health
            {"status": "healthy"}
        """
        return jsonify({"status": "healthy"}), 200

    return app


def verify_ghost_signature(body: bytes, header: Optional[str], secret: str) -> bool:
    """Verify a Ghost webhook signature.

    Ghost sends "sha256=<hex>, t=<timestamp>" where hex is the HMAC-SHA256
    of the raw body followed by the timestamp, keyed with the webhook secret.
    """
    if not header:
        return False

    parts = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key] = value

    signature = parts.get("sha256")
    timestamp = parts.get("t")
    if not signature or not timestamp:
        return False

    expected = hmac.new(secret.encode("utf-8"), body + timestamp.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def build_content_change_event(payload: Dict[str, Any]) -> ContentChangeEvent:
    """Convert a validated Ghost post webhook payload into a ContentChangeEvent.

    Attributes missing from post.previous did not change, so they take the
    current value.
    """
    post = payload["post"]
    current = post["current"]
    previous = post.get("previous") or {}

    html = current.get("html")
    status = current["status"]

    return ContentChangeEvent(
        html=html,
        status=status,
        previous_html=previous.get("html", html),
        previous_status=previous.get("status", status),
        url=current.get("url"),
        email_only=bool(current.get("email_only")),
        resource_id=current.get("id"),
    )


def validate_ghost_post(payload: Dict[str, Any]) -> None:
    """Validate a Ghost webhook payload against the JSON schema.

    Raises:
        GhostPostValidationError: If validation fails, includes details about
            which field caused the failure and the validation constraint violated
    """
    try:
        validate(instance=payload, schema=GHOST_POST_SCHEMA)
    except ValidationError as e:
        path_str = ".".join(str(p) for p in e.path)
        error_msg = f"Schema validation failed: {e.message} at path: {path_str}"
        raise GhostPostValidationError(error_msg) from e
