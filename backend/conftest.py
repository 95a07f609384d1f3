"""
Shared fixtures for the Safewatch backend tests
"""
import os

import pytest

# Force the environment BEFORE importing any backend module
os.environ["SAFEWATCH_SCHEDULER"] = "0"
os.environ["SAFEWATCH_RATE_LIMIT"] = "0"
os.environ["GEMINI_API_KEY"] = ""
os.environ["VITE_GEMINI_API_KEY"] = ""

import classifier
from engine import SafetyEngine
from errors import ClassificationUnavailable
from spatial_index import SpatialIndex
from store import DocumentStore

T0 = 1_760_000_000.0  # mid-October 2025
DAY = 24 * 60 * 60


class FakeClock:
    """Manually advanced clock so expiry and windows are deterministic."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return DocumentStore(str(tmp_path / "safewatch.db"), clock=clock)


@pytest.fixture
def index(store):
    return SpatialIndex(store, retry_backoff=0)


@pytest.fixture
def engine(store):
    eng = SafetyEngine(store)
    eng.index.retry_backoff = 0
    return eng


@pytest.fixture(autouse=True)
def no_gemini(monkeypatch):
    """Every test starts with the AI classifier unreachable and empty caches."""
    def _unavailable(prompt, json_output=True):
        raise ClassificationUnavailable("Gemini disabled in tests")

    monkeypatch.setattr(classifier, "_generate", _unavailable)
    classifier.clear_caches()
    yield
    classifier.clear_caches()


@pytest.fixture
def gemini(monkeypatch):
    """Make Gemini answer with canned text. Returns the list of prompts seen."""
    prompts = []

    def install(response: str):
        def _generate(prompt, json_output=True):
            prompts.append(prompt)
            return response
        monkeypatch.setattr(classifier, "_generate", _generate)
        return prompts

    return install


@pytest.fixture
def client(engine):
    from fastapi.testclient import TestClient
    from engine import get_engine
    from routes import app

    app.dependency_overrides[get_engine] = lambda: engine
    # No `with`: startup hooks (and the scheduler) stay off
    yield TestClient(app)
    app.dependency_overrides.clear()


BENGALURU = {"lat": 12.9716, "lng": 77.5946}
