# conftest.py
# Put python/ on sys.path so tests can import both the dishscout package and
# the main.py / qa_check.py scripts, the same way they are run.

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent

for path in (str(ROOT), str(TESTS)):
    if path not in sys.path:
        sys.path.insert(0, path)

from dishscout.browser import BrowserSessionManager  # noqa: E402


@pytest.fixture
def manager():
    session = BrowserSessionManager()
    yield session
    session.shutdown()
