"""Tests for the key store and the snapshot transport."""

import os
import stat

import pytest
from pathlib import Path

from retrodeck.keystore import KeyStore
from retrodeck.transport import FileTransport, Transport


class TestKeyStore:
    def test_missing(self, keystore: KeyStore):
        assert keystore.get() is None
        assert keystore.source() == "MISSING"

    def test_set_and_get(self, keystore: KeyStore):
        keystore.set("  sk-local  ")
        assert keystore.get() == "sk-local"
        assert keystore.source() == "LOCAL"
        assert stat.S_IMODE(os.stat(keystore.path).st_mode) == 0o600

    def test_env_wins(self, keystore: KeyStore, monkeypatch):
        keystore.set("sk-local")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert keystore.get() == "sk-env"
        assert keystore.source() == "ENV"

    def test_blank_file_is_missing(self, keystore: KeyStore):
        keystore.path.write_text("\n")
        assert keystore.get() is None
        assert keystore.source() == "MISSING"


class TestFileTransport:
    def test_protocol(self, transport: FileTransport):
        assert isinstance(transport, Transport)

    def test_export_and_read(self, transport: FileTransport):
        path = transport.export(b"{}", "retrodeck_v1.1.1_2025-01-01T00-00-00.json")
        assert path.parent == transport.root
        assert transport.read(path.name) == b"{}"
        assert transport.read(str(path)) == b"{}"

    def test_export_keeps_basename_only(self, transport: FileTransport):
        path = transport.export(b"x", "../../escape.json")
        assert path == transport.root / "escape.json"

    def test_read_missing(self, transport: FileTransport):
        with pytest.raises(OSError):
            transport.read("nope.json")

    def test_latest(self, transport: FileTransport):
        assert transport.latest() is None
        old = transport.export(b"1", "retrodeck_v1.1.1_2025-01-01T00-00-00.json")
        new = transport.export(b"2", "retrodeck_v1.1.2_2025-01-01T00-00-01.json")
        transport.export(b"3", "unrelated.json")
        os.utime(old, (1_000, 1_000))
        os.utime(new, (2_000, 2_000))
        assert transport.latest() == new
