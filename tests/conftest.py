"""Shared test fixtures."""

from pathlib import Path

import pytest

from clipshare.config import ClipShareConfig
from fakes import SERVER_URL


@pytest.fixture
def config(tmp_path: Path) -> ClipShareConfig:
    return ClipShareConfig(server_url=SERVER_URL, work_dir=tmp_path / "work")
