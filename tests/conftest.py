"""
Shared fixtures for the NoteCanvas test suite.
"""

import random

import pytest
from PySide6.QtCore import QCoreApplication

from notecanvas.canvas.graph_store import GraphStore
from notecanvas.settings import SettingsManager
from notecanvas.storage import MemoryStorage
from notecanvas.tasks import TaskRunner


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One Qt application object for every test that creates QObjects."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store():
    return GraphStore(rng=random.Random(1234))


@pytest.fixture
def runner():
    """Runs background work synchronously so results are applied before submit returns."""
    return TaskRunner(inline=True)


@pytest.fixture
def settings(storage):
    return SettingsManager(storage=storage)


@pytest.fixture
def spy():
    """Factory: record every emission of a Qt signal as a tuple of its arguments."""
    def _spy(signal):
        calls = []
        signal.connect(lambda *args: calls.append(args))
        return calls
    return _spy
