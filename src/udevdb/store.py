"""
Device store: the public interface of the device database.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from . import codec, keys
from .config import StoreConfig, get_config
from .engine import KVEngine
from .errors import CorruptRecord, EngineFailure, InvalidArgument, NotFound, StoreFailure
from .index import IndexManager, StagedWrite
from .models import (
    SECONDARY_KINDS,
    UNKNOWN,
    ConsistencyReport,
    DeviceAttributes,
    DeviceRecord,
    DeviceType,
    EngineMode,
    IndexEntry,
    IndexKind,
)

logger = logging.getLogger(__name__)


class DeviceStore:
    """
    Stores device records and resolves them by name, bus, class or sysfs path.

    The store owns its engine handle; it must be initialized with init()
    before use and released with exit(). Operations are synchronous and not
    locked: callers sharing a store between threads serialize access
    themselves.

    Usage:
        with DeviceStore(config).init(EngineMode.IN_MEMORY) as store:
            store.add_device("/sys/class/tty/ttyS0", attributes, "ttyS0", "c", 4, 64, 0o660)
            record = store.get_by_class("tty", "ttyS0")
    """

    def __init__(self, config: Optional[StoreConfig] = None, engine: Optional[KVEngine] = None):
        """
        Initialize device store.

        Args:
            config: Store configuration (default: global configuration)
            engine: Engine to use instead of one built from config
        """
        self.config = config or get_config()
        self.engine = engine or KVEngine(
            db_path=self.config.db_path,
            file_mode=self.config.file_mode,
            create_dirs=self.config.create_dirs,
        )
        self.index = IndexManager(self.engine)

    def init(self, mode: Union[EngineMode, str] = EngineMode.PERSISTENT) -> "DeviceStore":
        """
        Open the backing engine.

        Args:
            mode: "persistent" for the configured file, "in_memory" for none

        Raises:
            InvalidArgument: for an unknown mode or an already initialized store
            EngineUnavailable: if the engine cannot be opened
        """
        try:
            mode = EngineMode(mode)
        except ValueError as e:
            raise InvalidArgument(f"Unknown store mode: {mode!r}") from e
        if self.engine.is_open:
            raise InvalidArgument("Device store is already initialized")
        self.engine.open(mode)
        return self

    def exit(self) -> None:
        """Close the backing engine. Safe to call more than once."""
        self.engine.close()

    def __enter__(self) -> "DeviceStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.exit()

    def build_record(
        self,
        discovery_path: str,
        attributes: Union[DeviceAttributes, Mapping[str, Any], None],
        name: str,
        type_tag: Union[DeviceType, str],
        major: int,
        minor: int,
        mode: int,
    ) -> DeviceRecord:
        """
        Build and validate the record add_device() would store.

        Raises:
            InvalidArgument: if attributes are missing or any value is invalid
        """
        if attributes is None:
            raise InvalidArgument("Device attributes are required")
        try:
            if not isinstance(attributes, DeviceAttributes):
                attributes = DeviceAttributes(**attributes)
            record = DeviceRecord(
                name=name,
                sysfs_path=discovery_path,
                device_path=attributes.device_path or "",
                class_dev_name=attributes.class_dev_name,
                class_name=attributes.class_name,
                bus_name=attributes.bus_name or UNKNOWN,
                bus_id=attributes.bus_id or "",
                driver=attributes.driver or UNKNOWN,
                type=type_tag,
                major=major,
                minor=minor,
                mode=mode,
            )
        except (TypeError, ValidationError) as e:
            raise InvalidArgument(f"Invalid device {name!r}: {e}") from e

        # Everything that will be written is checked here, before any write
        keys.name_key(record.name)
        codec.encode_device_record(record)
        self.index.secondary_keys(record)
        return record

    def add_device(
        self,
        discovery_path: str,
        attributes: Union[DeviceAttributes, Mapping[str, Any], None],
        name: str,
        type_tag: Union[DeviceType, str],
        major: int,
        minor: int,
        mode: int,
        *,
        rollback: bool = False,
    ) -> DeviceRecord:
        """
        Add or replace a device.

        Writes the primary record first, then the bus, class and sysfs
        entries, each as an independent upsert. A secondary entry that was
        written therefore always resolves to an existing record.

        Args:
            discovery_path: sysfs path the device was discovered at
            attributes: Attributes reported by device discovery
            name: Assigned device name
            type_tag: Device node type ("c" or "b")
            major: Major number
            minor: Minor number
            mode: Permission mode
            rollback: Restore the previous state of written entries if a
                later write fails

        Returns:
            The stored record

        Raises:
            InvalidArgument: if any input is invalid (nothing is written)
            StoreFailure: if a write or the pruning of a stale entry fails;
                earlier writes stay in place unless rollback was requested
        """
        record = self.build_record(discovery_path, attributes, name, type_tag, major, minor, mode)
        new_keys = self.index.secondary_keys(record)
        previous = self._previous_record(name) if self.config.prune_stale_entries else None

        writer = self.index.stage() if rollback else self.index
        completed: List[str] = []
        stage = IndexKind.NAME.value
        try:
            writer.put_primary(name, record)
            completed.append(stage)
            for kind, key in new_keys.items():
                stage = kind.value
                writer.put_secondary(kind, key, name)
                completed.append(stage)
            if previous is not None:
                for kind, old_key in self._stale_keys(previous, new_keys):
                    stage = f"prune {kind.value}"
                    if self._remove_if_owned(kind, old_key, name, writer):
                        logger.info(
                            f"Pruned stale {kind.value} entry {old_key.decode('utf-8')!r} of {name}"
                        )
        except EngineFailure as e:
            rolled_back = False
            if rollback:
                try:
                    writer.rollback()
                    rolled_back = True
                except EngineFailure as rollback_error:
                    logger.error(f"Rollback of {name} failed: {rollback_error}")
            logger.warning(
                f"Adding {name} failed at {stage} "
                f"(completed: {completed}, rolled back: {rolled_back}): {e}"
            )
            raise StoreFailure(stage, completed, rolled_back) from e

        logger.info(f"Added device {name} ({record.sysfs_path})")
        return record

    def _previous_record(self, name: str) -> Optional[DeviceRecord]:
        try:
            return self.index.get_primary(name)
        except NotFound:
            return None
        except CorruptRecord as e:
            logger.warning(f"Existing record for {name} is unreadable, not pruning: {e}")
            return None

    def _stale_keys(
        self, previous: DeviceRecord, new_keys: Dict[IndexKind, bytes]
    ) -> List[Tuple[IndexKind, bytes]]:
        """Secondary keys of the previous record that the new one no longer implies."""
        return [
            (kind, old_key)
            for kind, old_key in self.index.secondary_keys(previous).items()
            if old_key != new_keys[kind]
        ]

    def _remove_if_owned(
        self,
        kind: IndexKind,
        key: bytes,
        name: str,
        writer: Union[IndexManager, StagedWrite, None] = None,
    ) -> bool:
        """Remove a secondary entry unless it now belongs to another device."""
        try:
            owner = self.index.resolve_secondary(kind, key)
        except NotFound:
            return False
        except CorruptRecord:
            owner = None
        if owner is not None and owner != name:
            logger.debug(f"{kind.value} entry {key!r} now belongs to {owner}, keeping it")
            return False
        return (writer or self.index).remove_secondary(kind, key)

    def get_by_name(self, name: str) -> DeviceRecord:
        """
        Get device by name.

        Raises:
            InvalidArgument: if name is empty or too long
            NotFound: if no device has that name
        """
        return self.index.get_primary(name)

    def get_by_bus(self, bus: str, bus_id: str) -> DeviceRecord:
        """Get device by bus type and bus id."""
        name = self.index.resolve_secondary(IndexKind.BUS, keys.bus_key(bus, bus_id))
        return self.get_by_name(name)

    def get_by_class(self, class_name: str, class_dev_name: str) -> DeviceRecord:
        """Get device by class name and class device name."""
        name = self.index.resolve_secondary(
            IndexKind.CLASS, keys.class_key(class_name, class_dev_name)
        )
        return self.get_by_name(name)

    def get_by_sysfs_path(self, path: str) -> DeviceRecord:
        """Get device by the sysfs path it was discovered at."""
        return self.get_by_name(self.resolve_sysfs_path(path))

    def resolve_sysfs_path(self, path: str) -> str:
        """Return only the name of the device discovered at path."""
        return self.index.resolve_secondary(IndexKind.SYSFS, keys.sysfs_key(path))

    def delete_device(self, name: str) -> Optional[DeviceRecord]:
        """
        Remove a device and its bus, class and sysfs entries.

        Secondary entries go first and the primary record last, so an
        interrupted delete leaves a record without some of its lookups
        rather than lookups without a record. Entries that were taken over
        by another device are left alone.

        Returns:
            The removed record, or None if it was unreadable

        Raises:
            NotFound: if no device has that name
            StoreFailure: if a delete fails; the primary record is kept
        """
        try:
            record = self.index.get_primary(name)
            secondary = list(self.index.secondary_keys(record).items())
        except CorruptRecord as e:
            logger.warning(f"Record for {name} is unreadable, scanning indices: {e}")
            record = None
            secondary = self._entries_pointing_at(name)

        completed: List[str] = []
        stage = ""
        try:
            for kind, key in secondary:
                stage = kind.value
                self._remove_if_owned(kind, key, name)
                completed.append(stage)
            stage = IndexKind.NAME.value
            self.index.remove_primary(name)
            completed.append(stage)
        except EngineFailure as e:
            logger.warning(f"Deleting {name} failed at {stage} (completed: {completed}): {e}")
            raise StoreFailure(stage, completed) from e

        logger.info(f"Deleted device {name}")
        return record

    def _entries_pointing_at(self, name: str) -> List[Tuple[IndexKind, bytes]]:
        found = []
        for kind in SECONDARY_KINDS:
            for key, value in self.index.iter_entries(kind):
                try:
                    if codec.decode_name_record(value) == name:
                        found.append((kind, key))
                except CorruptRecord:
                    continue
        return found

    def list_devices(self) -> List[DeviceRecord]:
        """List all devices, ordered by name."""
        return list(self.index.iter_primary())

    def get_stats(self) -> Dict[str, int]:
        """Get entry counts of every index."""
        return {
            "total_devices": self.index.count(IndexKind.NAME),
            "bus_entries": self.index.count(IndexKind.BUS),
            "class_entries": self.index.count(IndexKind.CLASS),
            "sysfs_entries": self.index.count(IndexKind.SYSFS),
        }

    def check_consistency(self) -> ConsistencyReport:
        """
        Cross-check the secondary indices against the primary records.

        Writes are not atomic, so an interrupted add or delete (or a re-add
        with pruning disabled) can leave entries behind; this reports them.
        A key implied by several records, such as the "unknown#" bus key of
        devices without a bus, belongs to whichever device wrote it last; the
        others are not reported as orphaned.
        """
        report = ConsistencyReport()

        records: Dict[str, DeviceRecord] = {}
        for key, value in self.index.iter_entries(IndexKind.NAME):
            name = key.decode("utf-8")
            try:
                records[name] = codec.decode_device_record(name, value)
            except CorruptRecord as e:
                logger.warning(f"Corrupt record for {name}: {e}")
                report.corrupt.append(name)

        for kind in SECONDARY_KINDS:
            for key, value in self.index.iter_entries(kind):
                label = key.decode("utf-8", errors="replace")
                try:
                    target = codec.decode_name_record(value)
                except CorruptRecord as e:
                    report.dangling.append(IndexEntry(kind=kind, key=label, reason=str(e)))
                    continue
                record = records.get(target)
                if record is None:
                    reason = "record unreadable" if target in report.corrupt else "no record"
                    report.dangling.append(
                        IndexEntry(kind=kind, key=label, name=target, reason=reason)
                    )
                elif self.index.secondary_keys(record)[kind] != key:
                    report.stale.append(
                        IndexEntry(kind=kind, key=label, name=target, reason="record has moved")
                    )

        for name, record in records.items():
            for kind, key in self.index.secondary_keys(record).items():
                try:
                    owner = self.index.resolve_secondary(kind, key)
                except (NotFound, CorruptRecord):
                    owner = None
                if owner != name and not self._shares_key(records.get(owner), kind, key):
                    reason = "missing" if owner is None else f"points at {owner}"
                    report.orphaned.append(
                        IndexEntry(kind=kind, key=key.decode("utf-8"), name=name, reason=reason)
                    )

        if not report.is_consistent:
            logger.info(
                f"Consistency check: {len(report.dangling)} dangling, {len(report.stale)} stale, "
                f"{len(report.orphaned)} orphaned, {len(report.corrupt)} corrupt"
            )
        return report

    def _shares_key(self, owner: Optional[DeviceRecord], kind: IndexKind, key: bytes) -> bool:
        """True if the owning device's own record implies the same key."""
        return owner is not None and self.index.secondary_keys(owner)[kind] == key
