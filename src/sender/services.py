"""
Collaborator interfaces for the webmention sending service.

MentionSendingService never talks to Ghost, the job runner or the network
directly. It receives small capability objects instead, each described by a
Protocol below, and this module also ships the default implementations used
by the service entry point:

    DiscoveryService   indieweb.webmention.HttpDiscoveryService
    FeatureFlag        ConfigFeatureFlag
    JobService         ThreadPoolJobService / InlineJobService
    EventBus           InProcessEventBus
    Clock              mentions.clock.SystemClock

Tests swap any of them for fakes.
"""
import logging
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from mentions.clock import Clock, SystemClock  # noqa: F401

logger = logging.getLogger(__name__)

# Ghost post lifecycle events that may change a post's outbound links
POST_PUBLISHED = "post.published"
POST_PUBLISHED_EDITED = "post.published.edited"
POST_UNPUBLISHED = "post.unpublished"
POST_EVENTS = (POST_PUBLISHED, POST_PUBLISHED_EDITED, POST_UNPUBLISHED)


@dataclass(frozen=True)
class ContentChangeEvent:
    """A post changed state or content.

    Attributes:
        html: Rendered HTML of the current version
        status: Current status ("published", "draft", "scheduled", "sent", ...)
        previous_html: Rendered HTML before the change
        previous_status: Status before the change
        url: Public URL of the post, when the producer knows it
        email_only: True when the post is only delivered by email
        importing: True when the change comes from a bulk import
        internal: True when the change was made by the system, not a user
        resource_id: Ghost post id, for logging
    """
    html: Optional[str]
    status: str
    previous_html: Optional[str] = None
    previous_status: Optional[str] = None
    url: Optional[str] = None
    email_only: bool = False
    importing: bool = False
    internal: bool = False
    resource_id: Optional[str] = None


class DiscoveryService(Protocol):
    def get_endpoint(self, target: str) -> Optional[str]:
        """Return the webmention endpoint of target, or None if it has none."""
        ...


class FeatureFlag(Protocol):
    def is_enabled(self) -> bool:
        ...


class JobService(Protocol):
    def add_job(self, name: str, fn: Callable[[], Any]) -> Future:
        """Run fn now or later and return a future for its completion."""
        ...


class EventBus(Protocol):
    def subscribe(self, event_name: str, handler: Callable[..., Any]) -> None:
        ...


class ConfigFeatureFlag:
    """Feature flag backed by the webmention.enabled setting of config.yml."""

    def __init__(self, config: Dict[str, Any]):
        from config import get_webmention_config

        self.enabled = get_webmention_config(config)["enabled"]

    def is_enabled(self) -> bool:
        return self.enabled


class InProcessEventBus:
    """Synchronous publish/subscribe bus.

    Handlers run in subscription order on the publishing thread. A handler
    that raises stops delivery to the remaining handlers, so handlers are
    expected to contain their own failures.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Callable[..., Any]) -> None:
        self._handlers[event_name].append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to {event_name}")

    def publish(self, event_name: str, *args: Any, **kwargs: Any) -> int:
        """Deliver an event to every subscriber.

        Returns:
            Number of handlers invoked.
        """
        handlers = list(self._handlers.get(event_name, []))
        logger.debug(f"Publishing {event_name} to {len(handlers)} handler(s)")
        for handler in handlers:
            handler(*args, **kwargs)
        return len(handlers)


class InlineJobService:
    """Job service that runs every job immediately on the calling thread."""

    def add_job(self, name: str, fn: Callable[[], Any]) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn())
        except Exception as e:
            future.set_exception(e)
        return future


class ThreadPoolJobService:
    """Job service backed by a ThreadPoolExecutor.

    Jobs are best-effort: anything still queued when the process exits is lost.
    """

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="webmention")
        logger.info(f"ThreadPoolJobService initialized: max_workers={max_workers}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ThreadPoolJobService":
        from config import get_webmention_config

        return cls(max_workers=get_webmention_config(config)["max_workers"])

    def add_job(self, name: str, fn: Callable[[], Any]) -> Future:
        logger.debug(f"Queueing job: {name}")
        return self._executor.submit(fn)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
