"""
Pytest configuration file for the sequence engine tests.

This file ensures that the parent directory is in the Python path
so that test files can import sequence, sources, utils, models and app.
"""

import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from sequence import set_materialize_limit
from utils import clear_performance_metrics


@pytest.fixture(autouse=True)
def reset_engine_state():
    """Every test starts without a materialize limit and with empty metrics"""
    set_materialize_limit(None)
    clear_performance_metrics()
    yield
    set_materialize_limit(None)


@pytest.fixture
def client(monkeypatch):
    from fastapi.testclient import TestClient
    from app import app

    for name in ("SEQUENCE_MATERIALIZE_LIMIT", "SEQUENCE_LOG_LEVEL", "SEQUENCE_MAX_PREVIEW"):
        monkeypatch.delenv(name, raising=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sample_pipeline():
    return {
        "source": {"type": "count_from", "start": 1},
        "operations": [
            {"type": "map", "function": "lambda x: x * x"},
            {"type": "filter", "function": "lambda x: x % 5 == 0"},
            {"type": "take", "count": 10}
        ],
        "consumer": {"type": "collect"}
    }
