"""Pytest fixtures shared across all test modules."""

import pytest

from schemedoc.config import get_settings
from schemedoc.kernel import EvalKernel


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temporary sessions directory for every test."""
    monkeypatch.setenv("SCHEMEDOC_SESSIONS_DIR", str(tmp_path / "sessions"))
    monkeypatch.delenv("SCHEMEDOC_PERSIST_SESSIONS", raising=False)
    monkeypatch.delenv("SCHEMEDOC_PROMPT", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def kernel():
    return EvalKernel()


@pytest.fixture
def run(kernel):
    """Evaluate fragments in one kernel and return their results."""
    def _run(*sources):
        return [kernel.execute_fragment(source) for source in sources]
    return _run
