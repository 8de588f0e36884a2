"""
Pytest configuration and shared fixtures for all tests.

This module provides shared fixtures for the test suite, including:
- Fake collaborators for MentionSendingService (discovery, flag, clock)
- A sample post HTML document
- Mocked HTTP sessions for the webmention sender

No test touches the network: sessions and resolvers are always mocked.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from sender.services import InlineJobService


PUBLIC_IP = "93.184.216.34"

SAMPLE_POST_HTML = """
    <html>
        <body>
            <a href="https://example.com">Example</a>
            <a href="https://example.com">Example repeated</a>
            <a href="https://example.org#fragment">Example</a>
            <a href="http://example2.org">Example 2</a>
        </body>
    </html>
"""


class FakeFeatureFlag:
    def __init__(self, enabled=True):
        self.enabled = enabled

    def is_enabled(self):
        return self.enabled


class FakeDiscoveryService:
    """Returns the same endpoint for every target and records lookups."""

    def __init__(self, endpoint="https://example.org/webmentions-test"):
        self.endpoint = endpoint
        self.lookups = []

    def get_endpoint(self, target):
        self.lookups.append(target)
        return self.endpoint


class FixedClock:
    def __init__(self, now=None):
        self.current = now or datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)

    def now(self):
        return self.current


@pytest.fixture
def sample_post_html():
    return SAMPLE_POST_HTML


@pytest.fixture
def feature_flag():
    return FakeFeatureFlag(enabled=True)


@pytest.fixture
def discovery_service():
    return FakeDiscoveryService()


@pytest.fixture
def job_service():
    return InlineJobService()


@pytest.fixture
def fixed_clock():
    return FixedClock()


@pytest.fixture
def public_resolver():
    """Resolver mapping every hostname to a public address."""
    return MagicMock(return_value=[PUBLIC_IP])


def make_response(status_code=202, headers=None, json_data=None, text=""):
    """Build a mock requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.reason = "Reason"
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data
    return response


def mock_session(response=None, side_effect=None):
    """Create a mock session whose post() returns response or raises side_effect."""
    session = MagicMock()
    if side_effect is not None:
        session.post.side_effect = side_effect
    else:
        session.post.return_value = response
    return session
