"""
Mention Sending Service.

Listens to Ghost post lifecycle events and sends a webmention to every
external page a post links to.

Flow for one event:
    1. Eligibility gate (feature flag, import/internal origin, status and
       content changes, email-only posts). Ineligible events are dropped
       without side effects.
    2. Links of the current version, plus links of the previously published
       version that were removed, are collected.
    3. Each link's webmention endpoint is discovered; each send is queued as
       its own job. A failing send is logged and never affects the others.

Nothing raised while handling an event escapes on_content_changed(), because
the event bus does not isolate its listeners from each other.
"""
import logging
from concurrent.futures import Future
from typing import Callable, List, Optional

from indieweb.errors import SecurityError, WebmentionError
from indieweb.link_tracking import resolve_notify_links
from indieweb.webmention import OutboundNotification, WebmentionSender
from sender.services import (
    POST_EVENTS,
    ContentChangeEvent,
    DiscoveryService,
    EventBus,
    FeatureFlag,
    JobService,
)

logger = logging.getLogger(__name__)

PUBLISHED = "published"

# Ghost statuses of newsletters that were never published on the site
EMAIL_ONLY_STATUSES = ("sent", "send")

SEND_JOB_NAME = "send-webmention"


def _default_post_url(event: ContentChangeEvent) -> Optional[str]:
    return event.url


class MentionSendingService:
    """
    Sends webmentions for changed posts.

    Attributes:
        discovery_service: Finds the webmention endpoint of a target URL
        job_service: Runs each send as an independent job
        sender: Performs the protocol exchange
        feature_flag: Turns the whole service on or off
        get_post_url: Returns the public URL of the post in an event

    Example:
        >>> service = MentionSendingService(
        ...     discovery_service=HttpDiscoveryService(),
        ...     job_service=ThreadPoolJobService(),
        ...     sender=WebmentionSender(timeout=10),
        ...     feature_flag=ConfigFeatureFlag(config),
        ... )
        >>> service.listen(event_bus)
    """

    def __init__(
        self,
        discovery_service: DiscoveryService,
        job_service: JobService,
        sender: WebmentionSender,
        feature_flag: FeatureFlag,
        get_post_url: Callable[[ContentChangeEvent], Optional[str]] = _default_post_url,
        log: Optional[logging.Logger] = None,
    ):
        self.discovery_service = discovery_service
        self.job_service = job_service
        self.sender = sender
        self.feature_flag = feature_flag
        self.get_post_url = get_post_url
        self.log = log or logger

    def listen(self, event_bus: EventBus) -> None:
        """Subscribe to post.published, post.published.edited and post.unpublished."""
        for event_name in POST_EVENTS:
            event_bus.subscribe(event_name, self.on_content_changed)

    def _skip_reason(self, event: ContentChangeEvent) -> Optional[str]:
        """Return why an event must not trigger webmentions, or None if it should."""
        if not self.feature_flag.is_enabled():
            return "webmentions disabled"
        if event.importing:
            return "bulk import"
        if event.internal:
            return "internal context"
        if event.status == event.previous_status and event.html == event.previous_html:
            return "status and content unchanged"
        if event.status != PUBLISHED and event.previous_status != PUBLISHED:
            return f"post not published (status={event.status})"
        if event.email_only or event.status in EMAIL_ONLY_STATUSES:
            return "email-only post"
        return None

    def on_content_changed(self, event: ContentChangeEvent) -> None:
        """Event handler for post lifecycle events. Never raises."""
        try:
            reason = self._skip_reason(event)
            if reason:
                self.log.debug(f"Skipping webmentions for post {event.resource_id}: {reason}")
                return

            url = self.get_post_url(event)
            if not url:
                self.log.warning(f"No public URL for post {event.resource_id}, skipping webmentions")
                return

            previous_html = event.previous_html if event.previous_status == PUBLISHED else None
            self.send_all(url, event.html, previous_html)
        except Exception as e:
            self.log.error("Error in webmention sending service")
            self.log.error(f"Failed handling post {event.resource_id}: {e}", exc_info=True)

    def send_all(self, url: str, html: Optional[str], previous_html: Optional[str] = None) -> List[Future]:
        """Queue a webmention for every link of the post.

        Args:
            url: Public URL of the post (the webmention source).
            html: Current HTML of the post.
            previous_html: HTML of the previously published version, if any.

        Returns:
            Futures of the queued send jobs.
        """
        links = resolve_notify_links(html, previous_html, url)
        if links:
            self.log.info(f"Sending webmentions for {url} to {len(links)} link(s)")

        futures = []
        for target in links:
            endpoint = self.discovery_service.get_endpoint(target)
            if not endpoint:
                self.log.debug(f"No webmention endpoint for {target}")
                continue

            notification = OutboundNotification(source=url, target=target, endpoint=endpoint)
            futures.append(self.job_service.add_job(SEND_JOB_NAME, self._send_job(notification)))
        return futures

    def _send_job(self, notification: OutboundNotification) -> Callable[[], bool]:
        def job() -> bool:
            self.log.info(
                f"Sending webmention from {notification.source} to {notification.target} "
                f"via {notification.endpoint}"
            )
            try:
                self.sender.send(notification)
                return True
            except SecurityError as e:
                self.log.warning(f"Blocked webmention to {notification.endpoint}: {e}")
            except WebmentionError as e:
                self.log.error(f"Failed sending webmention via {notification.endpoint}: {e}")
            except Exception as e:
                self.log.error(
                    f"Unexpected error sending webmention via {notification.endpoint}: {e}",
                    exc_info=True,
                )
            return False

        return job
