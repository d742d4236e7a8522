"""Tests for duration parsing and formatting."""

from datetime import timedelta

import pytest

from kubectl_probe.durations import format_duration, parse_duration


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("5s", timedelta(seconds=5)),
            ("250ms", timedelta(milliseconds=250)),
            ("2m", timedelta(minutes=2)),
            ("1h", timedelta(hours=1)),
            ("1m30s", timedelta(seconds=90)),
            ("1.5s", timedelta(milliseconds=1500)),
            ("10", timedelta(seconds=10)),
            (3, timedelta(seconds=3)),
            (0.5, timedelta(milliseconds=500)),
        ],
    )
    def test_parses_valid_values(
        self, value: str | float, expected: timedelta
    ) -> None:
        """Parses unit strings and bare numbers as seconds."""
        assert parse_duration(value) == expected

    def test_passes_timedelta_through(self) -> None:
        """Accepts an existing timedelta unchanged."""
        assert parse_duration(timedelta(minutes=1)) == timedelta(minutes=1)

    @pytest.mark.parametrize("value", ["", "abc", "5x", "s5", "5s junk", "1m 30s"])
    def test_rejects_malformed_strings(self, value: str) -> None:
        """Raises ValueError for strings that are not durations."""
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(value)

    @pytest.mark.parametrize("value", ["0s", 0, -1, timedelta(0)])
    def test_rejects_non_positive_durations(self, value: object) -> None:
        """Raises ValueError for zero or negative durations."""
        with pytest.raises(ValueError, match="must be positive"):
            parse_duration(value)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("duration", "expected"),
    [
        (timedelta(seconds=5), "5s"),
        (timedelta(seconds=90), "90s"),
        (timedelta(minutes=2), "2m"),
        (timedelta(hours=3), "3h"),
        (timedelta(milliseconds=1500), "1500ms"),
    ],
)
def test_format_duration(duration: timedelta, expected: str) -> None:
    """Formats in the largest unit that represents the value exactly."""
    assert format_duration(duration) == expected
