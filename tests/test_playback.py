"""Tests for playback synchronisation against the trim range."""

import math
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from clipshare.intake import NonFiniteDurationError, UnusableSourceError
from clipshare.models import TimeRange
from clipshare.playback import PlaybackSync, ProbedMedia

from fakes import FakeMedia


@pytest.fixture
def media():
    return FakeMedia(duration=30.0)


class TestLoadMetadata:
    def test_selects_full_duration(self, media):
        sync = PlaybackSync(media)
        r = sync.load_metadata()
        assert (r.start, r.end, r.duration) == (0.0, 30.0, 30.0)
        assert sync.time_range is r

    @pytest.mark.parametrize("duration", [math.inf, math.nan])
    def test_non_finite_duration_rejected(self, duration):
        sync = PlaybackSync(FakeMedia(duration=duration))
        with pytest.raises(NonFiniteDurationError, match="Could not determine video duration"):
            sync.load_metadata()
        assert sync.time_range is None

    def test_zero_duration_rejected(self):
        with pytest.raises(UnusableSourceError):
            PlaybackSync(FakeMedia(duration=0.0)).load_metadata()


class TestLoop:
    def test_wraps_to_start_and_keeps_playing(self, media):
        sync = PlaybackSync(media, TimeRange(start=5.0, end=10.0, duration=30.0))
        sync.play()
        media.current_time = 10.2
        sync.on_time_update()
        assert media.current_time == 5.0
        assert sync.state.current_time == 5.0
        assert sync.state.is_playing is True
        assert media.paused is False

    def test_inside_range_untouched(self, media):
        sync = PlaybackSync(media, TimeRange(start=5.0, end=10.0, duration=30.0))
        media.current_time = 7.5
        sync.on_time_update()
        assert media.current_time == 7.5
        assert sync.state.current_time == 7.5

    def test_paused_wrap_stays_paused(self, media):
        sync = PlaybackSync(media, TimeRange(start=5.0, end=10.0, duration=30.0))
        media.current_time = 12.0
        sync.on_time_update()
        assert media.current_time == 5.0
        assert media.play_calls == 0

    def test_no_range_no_loop(self, media):
        sync = PlaybackSync(media)
        media.current_time = 29.0
        sync.on_time_update()
        assert media.current_time == 29.0


class TestControls:
    def test_toggle(self, media):
        sync = PlaybackSync(media)
        assert sync.toggle_play() is True
        assert media.paused is False
        assert sync.toggle_play() is False
        assert media.paused is True

    def test_volume_clamped(self, media):
        sync = PlaybackSync(media)
        sync.set_volume(1.7)
        assert media.volume == 1.0
        sync.set_volume(-0.2)
        assert sync.state.volume == 0.0

    def test_mute(self, media):
        sync = PlaybackSync(media)
        sync.set_muted(True)
        assert media.muted is True
        assert sync.state.is_muted is True

    def test_seek_clamped_to_duration(self, media):
        sync = PlaybackSync(media)
        sync.seek(45.0)
        assert media.current_time == 30.0
        sync.seek(-1.0)
        assert sync.state.current_time == 0.0


class TestProbedMedia:
    @patch("clipshare.playback.ffutil.probe_duration", return_value=12.5)
    def test_duration_probed_once(self, mock_probe):
        media = ProbedMedia(Path("clip.mp4"))
        assert media.duration == 12.5
        assert media.duration == 12.5
        mock_probe.assert_called_once()

    @patch(
        "clipshare.playback.ffutil.probe_duration",
        side_effect=subprocess.CalledProcessError(1, ["ffprobe"]),
    )
    def test_unreadable_file_has_nan_duration(self, mock_probe):
        assert math.isnan(ProbedMedia(Path("broken.mp4")).duration)

    def test_advance_only_while_playing(self):
        media = ProbedMedia(Path("clip.mp4"))
        media.advance(1.0)
        assert media.current_time == 0.0
        media.play()
        media.advance(1.5)
        assert media.current_time == 1.5
