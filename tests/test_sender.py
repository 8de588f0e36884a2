"""
Tests for the webmention-sender entry point wiring.

Running Tests:
    $ PYTHONPATH=src python -m pytest tests/test_sender.py -v
"""
import logging
from unittest.mock import patch

from indieweb.webmention import HttpDiscoveryService, WebmentionSender
from sender.sender import build_service, configure_logging
from sender.services import ContentChangeEvent, ThreadPoolJobService


def test_build_service_from_config():
    config = {"webmention": {"enabled": True, "timeout": 4, "discovery_timeout": 6, "max_workers": 2}}

    service, bus = build_service(config)
    try:
        assert isinstance(service.discovery_service, HttpDiscoveryService)
        assert service.discovery_service.timeout == 6.0
        assert isinstance(service.sender, WebmentionSender)
        assert service.sender.timeout == 4.0
        assert isinstance(service.job_service, ThreadPoolJobService)
        assert service.job_service.max_workers == 2
        assert service.feature_flag.is_enabled() is True
    finally:
        service.job_service.shutdown()


def test_service_subscribed_to_post_events():
    service, bus = build_service({})
    try:
        event = ContentChangeEvent(html="<p>x</p>", status="published", previous_status="draft")
        for name in ("post.published", "post.published.edited", "post.unpublished"):
            assert bus.publish(name, event) == 1
        assert bus.publish("post.deleted", event) == 0
    finally:
        service.job_service.shutdown()


def test_disabled_service_ignores_events():
    service, bus = build_service({"webmention": {"enabled": False}})
    try:
        with patch.object(service.discovery_service, "get_endpoint") as get_endpoint:
            bus.publish("post.published", ContentChangeEvent(
                html='<a href="https://example.com">x</a>',
                status="published",
                previous_status="draft",
                url="https://blog.example.com/post/",
            ))
        get_endpoint.assert_not_called()
    finally:
        service.job_service.shutdown()


def test_configure_logging(tmp_path):
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level
    try:
        configure_logging(debug=True, log_file=str(tmp_path / "sender.log"))

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 2
    finally:
        for handler in root_logger.handlers:
            handler.close()
        root_logger.handlers[:] = saved_handlers
        root_logger.setLevel(saved_level)
