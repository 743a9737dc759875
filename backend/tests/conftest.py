"""Test configuration and fixtures."""
import sys
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from media_relay.core.config import Settings
from media_relay.main import create_app

FAKE_TOOL = Path(__file__).with_name("fake_ytdlp.py")


@pytest.fixture
def fake_ytdlp(tmp_path: Path) -> Path:
    """Executable named yt-dlp that runs tests/fake_ytdlp.py.

    Returns:
        Path to the executable
    """
    tool = tmp_path / "bin" / "yt-dlp"
    tool.parent.mkdir()
    tool.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_TOOL}" "$@"\n')
    tool.chmod(0o755)
    return tool


@pytest.fixture
def settings(fake_ytdlp: Path) -> Settings:
    """Settings pointing at the fake yt-dlp."""
    return Settings(
        ENV="test",
        SERVE_STATIC=False,
        YTDLP_BINARY=str(fake_ytdlp),
    )


@pytest.fixture
def args_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """File where the fake yt-dlp records the arguments it was given."""
    path = tmp_path / "args.json"
    monkeypatch.setenv("FAKE_YTDLP_ARGS_FILE", str(path))
    return path


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app.

    Yields:
        TestClient instance
    """
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
