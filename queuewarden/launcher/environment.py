"""Per-directory defaults stored in the ``.queuewarden`` marker file.

The file holds a single line, ``<namespace>/<workspace>``, written by
``queuewarden workspace use`` and read by the launcher when no namespace or
workspace is given explicitly.
"""

from __future__ import annotations

from pathlib import Path

from queuewarden.constants import MARKER_FILE


class InvalidMarkerError(ValueError):
    """Raised when a marker is not of the form ``namespace/workspace``."""


def parse_marker(text: str) -> tuple[str, str]:
    namespace, sep, workspace = text.strip().partition("/")
    if not sep or not namespace or not workspace or "/" in workspace:
        msg = f"Expected 'namespace/workspace', got '{text.strip()}'"
        raise InvalidMarkerError(msg)
    return namespace, workspace


def read_marker(path: Path) -> tuple[str, str] | None:
    """Return ``(namespace, workspace)`` from *path*'s marker file, if any."""
    marker = path / MARKER_FILE
    if not marker.is_file():
        return None
    return parse_marker(marker.read_text(encoding="utf-8"))


def write_marker(path: Path, namespace: str, workspace: str) -> Path:
    marker = path / MARKER_FILE
    marker.write_text(f"{namespace}/{workspace}\n", encoding="utf-8")
    return marker
