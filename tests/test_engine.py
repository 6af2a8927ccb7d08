"""
Tests for the SQLite key-value engine.
"""

import os
import stat

import pytest

from udevdb import EngineMode, EngineUnavailable
from udevdb.engine import KVEngine


@pytest.fixture
def engine(tmp_path):
    engine = KVEngine(db_path=str(tmp_path / "kv.db"))
    engine.open(EngineMode.IN_MEMORY)
    yield engine
    engine.close()


class TestInMemory:
    """Test basic engine operations."""

    def test_fetch_missing(self, engine):
        assert engine.fetch(b"missing") is None

    def test_upsert_replaces(self, engine):
        engine.upsert(b"k", b"one")
        engine.upsert(b"k", b"two")
        assert engine.fetch(b"k") == b"two"

    def test_delete(self, engine):
        engine.upsert(b"k", b"v")
        assert engine.delete(b"k") is True
        assert engine.fetch(b"k") is None
        # Deleting an absent key is a no-op
        assert engine.delete(b"k") is False

    def test_iter_prefix(self, engine):
        engine.upsert(b"bus\0pci#2", b"b")
        engine.upsert(b"bus\0pci#1", b"a")
        engine.upsert(b"class\0net#eth0", b"c")

        assert list(engine.iter_prefix(b"bus\0")) == [
            (b"bus\0pci#1", b"a"),
            (b"bus\0pci#2", b"b"),
        ]
        assert list(engine.iter_prefix(b"sysfs\0")) == []

    def test_nothing_persisted(self, engine, tmp_path):
        engine.upsert(b"k", b"v")
        assert engine.path is None
        assert not (tmp_path / "kv.db").exists()


class TestLifecycle:
    """Test open/close handling."""

    def test_close_is_idempotent(self, engine):
        engine.close()
        engine.close()
        assert not engine.is_open
        assert engine.mode is None

    def test_use_after_close(self, engine):
        engine.close()
        with pytest.raises(EngineUnavailable):
            engine.fetch(b"k")
        with pytest.raises(EngineUnavailable):
            engine.upsert(b"k", b"v")

    def test_no_implicit_reopen(self, engine):
        with pytest.raises(EngineUnavailable):
            engine.open(EngineMode.IN_MEMORY)
        assert engine.mode is EngineMode.IN_MEMORY

    def test_persistent_file(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "udev.db"
        engine = KVEngine(db_path=str(path), file_mode=0o600)
        engine.open(EngineMode.PERSISTENT)
        engine.upsert(b"k", b"v")
        engine.close()

        assert path.exists()
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

        engine.open("persistent")
        assert engine.path == str(path)
        assert engine.fetch(b"k") == b"v"
        engine.close()

    def test_unavailable_when_parent_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        engine = KVEngine(db_path=str(blocker / "udev.db"))

        with pytest.raises(EngineUnavailable):
            engine.open(EngineMode.PERSISTENT)
        assert not engine.is_open

    def test_unavailable_without_dir_creation(self, tmp_path):
        engine = KVEngine(db_path=str(tmp_path / "missing" / "udev.db"), create_dirs=False)
        with pytest.raises(EngineUnavailable):
            engine.open(EngineMode.PERSISTENT)
