"""Unit tests for the femtologging helpers.

Run with:
    pytest tests/unit/test_logging.py
"""

from __future__ import annotations

import pytest

from gasmeter.logging import (
    configure_logging,
    format_log_message,
    log_info,
    log_warning,
    normalize_log_level,
)


class _RecordingLogger:
    """Records every ``log`` call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, object | None, bool]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        self.calls.append((level, message, exc_info, stack_info))
        return message


@pytest.mark.parametrize(
    ("raw", "expected", "invalid"),
    [
        ("debug", "DEBUG", False),
        ("  Warn ", "WARN", False),
        (None, "INFO", True),
        ("", "INFO", True),
        ("verbose", "INFO", True),
    ],
)
def test_normalize_log_level(raw: str | None, expected: str, *, invalid: bool) -> None:
    """Levels are upper-cased and unknown names fall back to INFO."""
    assert normalize_log_level(raw) == (expected, invalid)


def test_format_log_message_interpolates() -> None:
    """Percent formatting is applied to the template."""
    assert format_log_message("gas=%.2f op=%s", 0.125, "fetch") == "gas=0.12 op=fetch"


def test_format_log_message_without_args_keeps_percent_signs() -> None:
    """A template with no arguments is returned untouched."""
    assert format_log_message("cpu at 100%") == "cpu at 100%"


@pytest.mark.parametrize(
    ("emit", "level"),
    [
        (log_info, "INFO"),
        (log_warning, "WARNING"),
    ],
)
def test_level_helpers_format_and_forward(emit: object, level: str) -> None:
    """Each helper formats its message and logs at its own level."""
    logger = _RecordingLogger()
    error = RuntimeError("boom")

    emit(logger, "measured %s", "op", exc_info=error)  # type: ignore[operator]

    assert logger.calls == [(level, "measured op", error, False)]


def test_configure_logging_applies_normalized_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """configure_logging passes the normalized level to basicConfig."""
    captured: dict[str, object] = {}

    def fake_basic_config(**kwargs: object) -> None:
        captured.update(kwargs)

    monkeypatch.setattr("gasmeter.logging.basicConfig", fake_basic_config)

    assert configure_logging("nonsense", force=True) == ("INFO", True)
    assert captured == {"level": "INFO", "force": True}
