"""
Unit tests for SessionState
Tests: time remaining, display formatting, payload decoding
"""
from datetime import timedelta

import pytest

from benodoro.session.state import (
    DEFAULT_DURATION,
    SessionState,
    format_remaining,
    from_epoch,
    to_duration,
    to_flag,
)

from conftest import T0


class TestTimeRemaining:
    """Test derived time remaining"""

    def test_idle_state_has_nothing_remaining(self):
        state = SessionState()
        assert state.time_remaining(T0) == timedelta(0)
        assert not state.is_active
        assert state.end_time is None

    @pytest.mark.parametrize("seconds", [1, 300, 1500, 3600])
    def test_zero_at_end_of_session(self, seconds):
        duration = timedelta(seconds=seconds)
        state = SessionState(start_time=T0, duration=duration)
        assert state.time_remaining(T0 + duration) == timedelta(0)

    @pytest.mark.parametrize("elapsed", [0.5, 1, 749, 1499])
    def test_linear_countdown_inside_session(self, elapsed):
        duration = timedelta(seconds=1500)
        state = SessionState(start_time=T0, duration=duration)
        now = T0 + timedelta(seconds=elapsed)
        assert state.time_remaining(now) == duration - (now - T0)

    def test_focus_scenario_is_clamped(self):
        state = SessionState(start_time=T0, duration=timedelta(seconds=1500))
        assert state.time_remaining(T0) == timedelta(seconds=1500)
        assert state.time_remaining(T0 + timedelta(seconds=1500)) == timedelta(0)
        assert state.time_remaining(T0 + timedelta(seconds=2000)) == timedelta(0)

    def test_expired(self):
        state = SessionState(start_time=T0, duration=timedelta(minutes=5))
        assert not state.is_expired(T0 + timedelta(minutes=4))
        assert state.is_expired(T0 + timedelta(minutes=5))
        assert not SessionState().is_expired(T0)


class TestDisplay:
    """Test MM:SS formatting"""

    def test_format_remaining(self):
        assert format_remaining(timedelta(minutes=25)) == "25:00"
        assert format_remaining(timedelta(seconds=61.9)) == "01:01"
        assert format_remaining(timedelta(seconds=-5)) == "00:00"

    def test_remaining_display(self):
        state = SessionState(start_time=T0, duration=timedelta(minutes=5), is_break=True)
        assert state.remaining_display(T0 + timedelta(seconds=90)) == "03:30"


class TestPayload:
    """Test the loosely typed map shared with the local mirror and companion"""

    def test_idle_encodes_sentinel(self):
        payload = SessionState().to_payload()
        assert payload["startTime"] == 0
        assert payload["duration"] == DEFAULT_DURATION.total_seconds()
        assert payload["isBreak"] is False

    def test_sentinel_decodes_to_idle(self):
        state = SessionState.from_payload({"startTime": 0, "duration": 300, "isBreak": True})
        assert state.start_time is None
        assert state.duration == timedelta(seconds=300)

    def test_active_state_decodes(self):
        original = SessionState(start_time=T0, duration=timedelta(minutes=5), is_break=True, updated_at=T0)
        decoded = SessionState.from_payload(original.to_payload())
        assert decoded == original

    def test_missing_fields_use_defaults(self):
        state = SessionState.from_payload({})
        assert state == SessionState()

    @pytest.mark.parametrize("value", [None, "abc", 0, -10])
    def test_bad_duration_falls_back_to_default(self, value):
        assert to_duration(value) == DEFAULT_DURATION

    @pytest.mark.parametrize("value", [None, "abc", 0, -1.5])
    def test_bad_epoch_means_absent(self, value):
        assert from_epoch(value) is None

    @pytest.mark.parametrize("value", [1e20, "nan", float("inf"), -float("inf"), True, "1e400"])
    def test_out_of_range_epoch_means_absent(self, value):
        assert from_epoch(value) is None

    def test_epoch_too_late_for_any_session_means_absent(self):
        assert from_epoch(253402300799) is None

    @pytest.mark.parametrize("value", [1e300, "nan", float("inf"), True, 365 * 24 * 3600 + 1])
    def test_out_of_range_duration_falls_back_to_default(self, value):
        assert to_duration(value) == DEFAULT_DURATION

    def test_out_of_range_payload_decodes_to_defaults(self):
        state = SessionState.from_payload({"startTime": 1e20, "duration": 1e300, "updatedAt": "nan"})
        assert state == SessionState()

    @pytest.mark.parametrize("value", ["false", "true", 1, None])
    def test_non_bool_break_flag_reads_false(self, value):
        assert SessionState.from_payload({"isBreak": value}).is_break is False
        assert to_flag(value) is False

    def test_idle_keeps_configured_duration(self):
        state = SessionState.idle(duration=timedelta(minutes=50), updated_at=T0)
        assert not state.is_active
        assert state.is_break is False
        assert state.duration == timedelta(minutes=50)
