"""Tests for the per-directory marker file."""

from __future__ import annotations

import pytest

from queuewarden.constants import MARKER_FILE
from queuewarden.launcher.environment import InvalidMarkerError, parse_marker, read_marker, write_marker


def test_parse_marker() -> None:
    assert parse_marker("dev/network\n") == ("dev", "network")


@pytest.mark.parametrize("text", ["", "dev", "dev/", "/network", "a/b/c"])
def test_parse_invalid_marker(text: str) -> None:
    with pytest.raises(InvalidMarkerError):
        parse_marker(text)


def test_missing_marker(tmp_path) -> None:
    assert read_marker(tmp_path) is None


def test_write_then_read(tmp_path) -> None:
    marker = write_marker(tmp_path, "dev", "network")

    assert marker == tmp_path / MARKER_FILE
    assert marker.read_text() == "dev/network\n"
    assert read_marker(tmp_path) == ("dev", "network")
