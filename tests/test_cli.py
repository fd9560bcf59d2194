"""Tests for the headless upload command."""

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from clipshare import cli

from fakes import SERVER_URL, FakeEngine, make_client


@pytest.fixture
def fake_stack(monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr(cli, "TranscodeEngine", SimpleNamespace(from_config=lambda cfg: engine))
    monkeypatch.setattr(cli, "ClipShareClient", lambda cfg: make_client(config=cfg))
    monkeypatch.setattr(
        "clipshare.playback.ffutil.probe_duration", lambda path, ffprobe="ffprobe": 30.0
    )
    return engine


def _run(monkeypatch, *argv) -> int:
    monkeypatch.setattr(sys, "argv", ["clipshare", "--server", SERVER_URL, *argv])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


class TestUploadCommand:
    def test_success(self, fake_stack, monkeypatch, capsys, tmp_path: Path):
        video = tmp_path / "match.mp4"
        video.write_bytes(b"RAWVIDEO")

        code = _run(
            monkeypatch, "upload", str(video),
            "--title", "Test Clip", "--start", "0:05", "--end", "0:15",
        )

        assert code == 0
        out = capsys.readouterr().out
        assert f"Done! Clip: {SERVER_URL}/clip/abc" in out
        assert "Range: 0:05 -> 0:15 (10.00s)" in out
        assert fake_stack.unload_calls == 1

    def test_non_video_rejected(self, fake_stack, monkeypatch, capsys, tmp_path: Path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")

        code = _run(monkeypatch, "upload", str(notes), "--title", "x")

        assert code == 1
        assert "valid video file" in capsys.readouterr().err
        assert fake_stack.calls == []

    def test_bad_range(self, fake_stack, monkeypatch, capsys, tmp_path: Path):
        video = tmp_path / "match.mp4"
        video.write_bytes(b"RAWVIDEO")

        code = _run(monkeypatch, "upload", str(video), "--title", "x", "--end", "5:00")

        assert code == 1
        assert "invalid end time" in capsys.readouterr().err

    def test_missing_file(self, monkeypatch, capsys, tmp_path: Path):
        code = _run(monkeypatch, "upload", str(tmp_path / "nope.mp4"), "--title", "x")
        assert code == 1
