"""
Shared fixtures for device database tests.
"""

from typing import Optional

import pytest

from udevdb import DeviceAttributes, DeviceStore, EngineMode, StoreConfig
from udevdb.engine import KVEngine
from udevdb.errors import EngineFailure


class FlakyEngine(KVEngine):
    """Engine that fails writes to keys starting with a chosen prefix."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_upsert_prefix: Optional[bytes] = None
        self.fail_delete_prefix: Optional[bytes] = None

    def upsert(self, key: bytes, value: bytes) -> None:
        if self.fail_upsert_prefix is not None and key.startswith(self.fail_upsert_prefix):
            raise EngineFailure("injected upsert failure")
        super().upsert(key, value)

    def delete(self, key: bytes) -> bool:
        if self.fail_delete_prefix is not None and key.startswith(self.fail_delete_prefix):
            raise EngineFailure("injected delete failure")
        return super().delete(key)


@pytest.fixture
def config(tmp_path):
    return StoreConfig(db_path=str(tmp_path / "udev" / "udev.db"))


@pytest.fixture
def store(config):
    store = DeviceStore(config).init(EngineMode.IN_MEMORY)
    yield store
    store.exit()


@pytest.fixture
def flaky_store(config):
    engine = FlakyEngine(db_path=config.db_path)
    store = DeviceStore(config, engine=engine).init(EngineMode.IN_MEMORY)
    yield store
    store.exit()


@pytest.fixture
def eth0_attributes():
    return DeviceAttributes(
        class_dev_name="eth0",
        class_name="net",
        device_path="/sys/devices/pci0000:00/0000:00:01",
        bus_name="pci",
        bus_id="0000:00:01",
        driver="e1000",
    )


@pytest.fixture
def tty_attributes():
    return DeviceAttributes(class_dev_name="ttyS0", class_name="tty")
