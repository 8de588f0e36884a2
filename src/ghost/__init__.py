"""Ghost Webhook Receiver Package.

This package provides a Flask-based webhook receiver that accepts Ghost
post lifecycle webhooks (post.published, post.published.edited,
post.unpublished), validates them against the Ghost post webhook schema and
publishes them as content change events for the webmention sender.

Endpoints:
    POST /webhook/ghost/<event_name>: Receives Ghost post webhooks
    GET /health: Health check endpoint for monitoring

Usage:
    Test with curl:
        $ curl -X POST http://localhost:5000/webhook/ghost/post.published \
               -H "Content-Type: application/json" \
               -d '{"post": {"current": {"id": "...", "status": "published", ...}}}'
"""
from .ghost import create_app

__all__ = ["create_app"]
