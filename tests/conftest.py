"""Shared fixtures for filestage tests."""

from __future__ import annotations

import pytest

from filestage.config import Settings
from filestage.models import RetrievalRequest


@pytest.fixture
def settings(tmp_path):
    return Settings(path=str(tmp_path / "staging"), default_subdir="default")


@pytest.fixture
def make_request():
    def _make(source: str, name: str = "artifact.tgz", **kwargs) -> RetrievalRequest:
        return RetrievalRequest(source=source, name=name, **kwargs)

    return _make
