"""
Index maintenance for the device database.

Four indices share one engine, each in its own key namespace:

- name  -> full device record (primary)
- bus   -> device name, keyed by "<bus>#<bus id>"
- class -> device name, keyed by "<class>#<class device>"
- sysfs -> device name, keyed by discovery path

Secondary entries only ever hold a name; the primary record is the single
source of truth. Writes across indices are independent and not atomic.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from . import codec, keys
from .engine import KVEngine
from .errors import NotFound
from .models import DeviceRecord, IndexKind

logger = logging.getLogger(__name__)

_NAMESPACE_SEP = b"\0"


def _namespace(kind: IndexKind) -> bytes:
    return IndexKind(kind).value.encode("ascii") + _NAMESPACE_SEP


class IndexManager:
    """
    Reads and writes entries of the primary and secondary indices.
    """

    def __init__(self, engine: KVEngine):
        self.engine = engine

    def storage_key(self, kind: IndexKind, key: bytes) -> bytes:
        """Key under which an index entry is stored in the engine."""
        return _namespace(kind) + key

    def secondary_keys(self, record: DeviceRecord) -> Dict[IndexKind, bytes]:
        """Secondary index keys implied by a record, in write order."""
        return {
            IndexKind.BUS: keys.bus_key(record.bus_name, record.bus_id),
            IndexKind.CLASS: keys.class_key(record.class_name, record.class_dev_name),
            IndexKind.SYSFS: keys.sysfs_key(record.sysfs_path),
        }

    # Primary index

    def put_primary(self, name: str, record: DeviceRecord) -> None:
        key = self.storage_key(IndexKind.NAME, keys.name_key(name))
        self.engine.upsert(key, codec.encode_device_record(record))
        logger.debug(f"Stored record for {name}")

    def get_primary(self, name: str) -> DeviceRecord:
        """
        Fetch and decode the record stored for name.

        Raises:
            NotFound: if there is no record for name
            CorruptRecord: if the stored value can't be decoded
        """
        data = self.engine.fetch(self.storage_key(IndexKind.NAME, keys.name_key(name)))
        if data is None:
            raise NotFound(f"No device named {name!r}")
        return codec.decode_device_record(name, data)

    def remove_primary(self, name: str) -> bool:
        removed = self.engine.delete(self.storage_key(IndexKind.NAME, keys.name_key(name)))
        if not removed:
            logger.debug(f"No record for {name} to remove")
        return removed

    # Secondary indices

    def put_secondary(self, kind: IndexKind, key: bytes, name: str) -> None:
        self.engine.upsert(self.storage_key(kind, key), codec.encode_name_record(name))
        logger.debug(f"Stored {kind.value} entry {key!r} -> {name}")

    def resolve_secondary(self, kind: IndexKind, key: bytes) -> str:
        """
        Resolve a secondary key to the device name it points at.

        Raises:
            NotFound: if the key is absent
            CorruptRecord: if the stored value can't be decoded
        """
        data = self.engine.fetch(self.storage_key(kind, key))
        if data is None:
            raise NotFound(f"No {kind.value} entry for {key.decode('utf-8')!r}")
        return codec.decode_name_record(data)

    def remove_secondary(self, kind: IndexKind, key: bytes) -> bool:
        removed = self.engine.delete(self.storage_key(kind, key))
        if not removed:
            logger.debug(f"No {kind.value} entry {key!r} to remove")
        return removed

    # Scanning

    def iter_entries(self, kind: IndexKind) -> Iterator[Tuple[bytes, bytes]]:
        """Yield (key, raw value) for every entry of one index."""
        prefix = _namespace(kind)
        for stored_key, value in self.engine.iter_prefix(prefix):
            yield stored_key[len(prefix):], value

    def iter_primary(self) -> Iterator[DeviceRecord]:
        for key, value in self.iter_entries(IndexKind.NAME):
            yield codec.decode_device_record(key.decode("utf-8"), value)

    def count(self, kind: IndexKind) -> int:
        return sum(1 for _ in self.iter_entries(kind))

    def stage(self) -> "StagedWrite":
        return StagedWrite(self)


class StagedWrite:
    """
    Sequence of index writes and removals that can be undone.

    The previous raw value of every key is captured before it is written
    and kept once the write succeeded, so rollback() restores the store to
    what it was before the sequence started (entries that did not exist
    are deleted again).
    """

    def __init__(self, manager: IndexManager):
        self.manager = manager
        self._prior: List[Tuple[bytes, Optional[bytes]]] = []

    def put_primary(self, name: str, record: DeviceRecord) -> None:
        storage_key = self.manager.storage_key(IndexKind.NAME, keys.name_key(name))
        prior = self.manager.engine.fetch(storage_key)
        self.manager.put_primary(name, record)
        self._prior.append((storage_key, prior))

    def put_secondary(self, kind: IndexKind, key: bytes, name: str) -> None:
        storage_key = self.manager.storage_key(kind, key)
        prior = self.manager.engine.fetch(storage_key)
        self.manager.put_secondary(kind, key, name)
        self._prior.append((storage_key, prior))

    def remove_secondary(self, kind: IndexKind, key: bytes) -> bool:
        storage_key = self.manager.storage_key(kind, key)
        prior = self.manager.engine.fetch(storage_key)
        removed = self.manager.remove_secondary(kind, key)
        if prior is not None:
            self._prior.append((storage_key, prior))
        return removed

    def rollback(self) -> None:
        """Restore every captured key, most recent first."""
        engine = self.manager.engine
        while self._prior:
            storage_key, prior = self._prior.pop()
            if prior is None:
                engine.delete(storage_key)
            else:
                engine.upsert(storage_key, prior)
        logger.debug("Rolled back staged writes")
