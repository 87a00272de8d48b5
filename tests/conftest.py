import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Pins the environment the engine reads its settings from: fake email and
    webhook transports, and no redis so the email queue runs in direct-send
    mode unless a test wires its own client.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ["EMAIL_ADAPTER"] = "fake"
    os.environ["WEBHOOK_ADAPTER"] = "fake"
    os.environ.pop("REDIS_URL", None)

    from notifications.config import reset_settings

    reset_settings()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
