"""Package a configuration directory into the payload ConfigMap."""

from __future__ import annotations

import base64
import gzip
import io
import tarfile
from pathlib import Path

from loguru import logger

from queuewarden.constants import DEFAULT_CONFIG_MAP_KEY, MARKER_FILE
from queuewarden.models.core import ConfigMap
from queuewarden.models.meta import ObjectMeta

MAX_PAYLOAD_BYTES = 1024 * 1024
"""ConfigMaps are limited to 1MiB."""

_SKIP_DIRS = frozenset({".git", ".terraform"})


class PayloadTooLargeError(ValueError):
    """Raised when the compressed configuration exceeds ``MAX_PAYLOAD_BYTES``."""


def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
    parts = Path(info.name).parts
    if any(part in _SKIP_DIRS for part in parts) or (parts and parts[-1] == MARKER_FILE):
        return None
    # Reproducible archives: same tree, same bytes.
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    info.mtime = 0
    return info


def create_archive(path: Path) -> bytes:
    """Gzipped tarball of *path*'s contents, relative to *path*.

    Version-control metadata, the local ``.terraform`` directory and the
    marker file are left out.
    """
    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz, tarfile.open(fileobj=gz, mode="w") as tar:
        for child in sorted(path.iterdir()):
            tar.add(child, arcname=child.name, filter=_filter)
    data = buffer.getvalue()
    if len(data) > MAX_PAYLOAD_BYTES:
        msg = f"Configuration archive of {path} is {len(data)} bytes, limit is {MAX_PAYLOAD_BYTES}"
        raise PayloadTooLargeError(msg)
    logger.debug("Archived {} ({} bytes)", path, len(data))
    return data


def build_payload(
    path: Path,
    name: str,
    namespace: str,
    *,
    key: str = DEFAULT_CONFIG_MAP_KEY,
    labels: dict[str, str] | None = None,
) -> ConfigMap:
    return ConfigMap(
        metadata=ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        binary_data={key: base64.b64encode(create_archive(path)).decode("ascii")},
    )


def extract_payload(config_map: ConfigMap, key: str = DEFAULT_CONFIG_MAP_KEY) -> list[str]:
    """Member names of the archive stored in *config_map*."""
    data = base64.b64decode(config_map.binary_data[key])
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        return tar.getnames()
