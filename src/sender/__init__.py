"""Webmention Sender Package.

This package wires Ghost post lifecycle events to outbound webmentions:
MentionSendingService decides when a post change should notify the pages it
links to, and sender.services holds the collaborator interfaces it depends on.

Exported:
    MentionSendingService: Event handler and fan-out of sends
    main: Entry point for the webmention-sender console command
"""
from .sending_service import MentionSendingService
from .sender import main

__all__ = ["MentionSendingService", "main"]
