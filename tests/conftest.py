"""Shared fixtures for watchdog tests."""

import pytest

from strictwatch.host import HostCapabilities
from strictwatch.violation import Violation


class RecordingSink:
    """Sink that remembers every report, optionally appending to a shared call log."""

    def __init__(self, calls=None):
        self.reports: list[Violation] = []
        self.calls = calls

    def report(self, violation):
        self.reports.append(violation)
        if self.calls is not None:
            self.calls.append("report")


@pytest.fixture
def interactive_host():
    return HostCapabilities(interactive=True, can_terminate=True)


@pytest.fixture
def headless_host():
    return HostCapabilities(interactive=False, can_terminate=True)


@pytest.fixture
def calls():
    return []


@pytest.fixture
def sink(calls):
    return RecordingSink(calls)
