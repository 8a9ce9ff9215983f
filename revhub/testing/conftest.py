"""
Pytest plugin for revhub testing fixtures.

This module re-exports all fixtures from fixtures.py so they can be
automatically discovered by pytest when this package is installed.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["revhub.testing.conftest"]

Or import the fixtures directly:

    from revhub.testing.fixtures import mock_gitlab, mock_phabricator
"""

# Re-export all fixtures for pytest auto-discovery
from revhub.testing.fixtures import (
    aggregator,
    mock_gitlab,
    mock_phabricator,
    mock_phabricator_with_revision,
    sample_merge_request,
    sample_phabricator_revision,
    sample_project,
)

__all__ = [
    "aggregator",
    "mock_gitlab",
    "mock_phabricator",
    "mock_phabricator_with_revision",
    "sample_merge_request",
    "sample_phabricator_revision",
    "sample_project",
]
