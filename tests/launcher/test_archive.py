"""Tests for packaging the configuration directory."""

from __future__ import annotations

import base64
import io
import os
import tarfile

import pytest

from queuewarden.constants import DEFAULT_CONFIG_MAP_KEY, MARKER_FILE, RUN_LABEL
from queuewarden.launcher.archive import (
    MAX_PAYLOAD_BYTES,
    PayloadTooLargeError,
    build_payload,
    create_archive,
    extract_payload,
)


def test_archive_skips_local_state(tmp_path) -> None:
    (tmp_path / "main.tf").write_text("terraform {}\n")
    (tmp_path / "modules" / "net").mkdir(parents=True)
    (tmp_path / "modules" / "net" / "vpc.tf").write_text("# vpc\n")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (tmp_path / ".terraform").mkdir()
    (tmp_path / ".terraform" / "terraform.tfstate").write_text("{}")
    (tmp_path / MARKER_FILE).write_text("dev/ws\n")

    payload = build_payload(tmp_path, "run-1", "dev", labels={RUN_LABEL: "run-1"})

    assert payload.key == ("dev", "run-1")
    assert payload.metadata.labels == {RUN_LABEL: "run-1"}
    assert sorted(extract_payload(payload)) == ["main.tf", "modules", "modules/net", "modules/net/vpc.tf"]


def test_archive_is_reproducible(tmp_path) -> None:
    (tmp_path / "main.tf").write_text("terraform {}\n")
    first = create_archive(tmp_path)
    os.utime(tmp_path / "main.tf", (0, 1_000_000))

    assert create_archive(tmp_path) == first
    with tarfile.open(fileobj=io.BytesIO(first), mode="r:gz") as tar:
        member = tar.getmember("main.tf")
    assert (member.uid, member.mtime) == (0, 0)


def test_payload_is_base64_binary_data(tmp_path) -> None:
    (tmp_path / "main.tf").write_text("terraform {}\n")

    payload = build_payload(tmp_path, "run-1", "dev")

    assert list(payload.binary_data) == [DEFAULT_CONFIG_MAP_KEY]
    assert base64.b64decode(payload.binary_data[DEFAULT_CONFIG_MAP_KEY]) == create_archive(tmp_path)


def test_oversized_configuration_is_rejected(tmp_path) -> None:
    # Random bytes do not compress.
    (tmp_path / "blob.bin").write_bytes(os.urandom(MAX_PAYLOAD_BYTES + 1024))

    with pytest.raises(PayloadTooLargeError, match="limit"):
        create_archive(tmp_path)
