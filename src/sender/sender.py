"""
Webmention Sender entry point.

The webmention-sender console script wires the service together and serves
the Ghost webhook receiver with an embedded Gunicorn:

    Ghost webhook → Flask app → InProcessEventBus
        → MentionSendingService.on_content_changed
        → ThreadPoolJobService → WebmentionSender.send

Functions:
    build_service(config) -> (MentionSendingService, InProcessEventBus):
        Creates the collaborators from config.yml and subscribes the service.
    main() -> None:
        Entry point for the console script.

Example:
    $ webmention-sender --debug
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Tuple

from indieweb.webmention import HttpDiscoveryService, WebmentionSender
from sender.sending_service import MentionSendingService
from sender.services import ConfigFeatureFlag, InProcessEventBus, ThreadPoolJobService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

GUNICORN_OPTIONS = {
    "bind": "0.0.0.0:5000",
    # One worker: the event bus and job pool live in process memory
    "workers": 1,
    "threads": 4,
    "timeout": 30,
    "keepalive": 2,
    "accesslog": "-",
    "errorlog": "-",
}


def configure_logging(debug: bool = False, log_file: str = "webmention-sender.log") -> None:
    """Configure root logging: 10MB rotating file plus stdout."""
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers to avoid duplicates (e.g., from gunicorn)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    log_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3
    )
    log_handler.setLevel(log_level)
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def build_service(config: Dict[str, Any]) -> Tuple[MentionSendingService, InProcessEventBus]:
    """Create the sending service from configuration and subscribe it to a new bus."""
    feature_flag = ConfigFeatureFlag(config)
    service = MentionSendingService(
        discovery_service=HttpDiscoveryService.from_config(config),
        job_service=ThreadPoolJobService.from_config(config),
        sender=WebmentionSender.from_config(config),
        feature_flag=feature_flag,
    )

    event_bus = InProcessEventBus()
    service.listen(event_bus)

    if feature_flag.is_enabled():
        logger.info(
            f"Webmention sending enabled: timeout={service.sender.timeout}s, "
            f"max_workers={service.job_service.max_workers}"
        )
    else:
        logger.info("Webmention sending disabled (webmention.enabled is false)")
    return service, event_bus


def main(debug: bool = False) -> None:
    """Main entry point for the webmention-sender console command.

    Args:
        debug: Enable DEBUG logging and disable the worker timeout.
               Can be set via --debug flag or WEBMENTION_DEBUG environment variable.
    """
    from gunicorn.app.base import BaseApplication
    from config import load_config
    from ghost.ghost import create_app

    if not debug:
        debug = os.environ.get("WEBMENTION_DEBUG", "").lower() in ("true", "1", "yes")
        if "--debug" in sys.argv[1:]:
            debug = True

    configure_logging(debug)
    if debug:
        logger.info("Debug mode enabled: verbose logging and worker timeout disabled")

    logger.info("Loading configuration from config.yml")
    config = load_config()

    service, event_bus = build_service(config)
    app = create_app(event_bus, config=config)

    class StandaloneApplication(BaseApplication):
        """Custom Gunicorn application for embedding within the entry point."""

        def __init__(self, app, options=None):
            self.options = options or {}
            self.application = app
            super().__init__()

        def load_config(self):
            for key, value in self.options.items():
                if key in self.cfg.settings and value is not None:
                    self.cfg.set(key.lower(), value)

        def load(self):
            return self.application

    options = dict(GUNICORN_OPTIONS)
    options["bind"] = config.get("server", {}).get("bind", options["bind"])
    options["loglevel"] = "debug" if debug else "info"
    if debug:
        options["timeout"] = 0

    try:
        StandaloneApplication(app, options).run()
    finally:
        service.job_service.shutdown(wait=False)


# Allow running as a script for development/testing
if __name__ == "__main__":
    main()
