"""
udevdb - multi-index device record store

Persists the canonical description of a discovered device and resolves it
by assigned name, by bus type and bus id, by class and class device name,
or by the sysfs path it was discovered at.

Main modules:
- store: DeviceStore, the public interface
- index: primary and secondary index maintenance
- keys: bounded lookup key construction
- codec: fixed-layout record encoding
- engine: SQLite-backed key-value engine
- config: environment-driven configuration
"""

__version__ = "0.1.0"

from .config import StoreConfig, get_config, reload_config, setup_logging
from .errors import (
    CorruptRecord,
    EngineFailure,
    EngineUnavailable,
    InvalidArgument,
    NotFound,
    StoreFailure,
    UdevDBError,
)
from .models import (
    UNKNOWN,
    ConsistencyReport,
    DeviceAttributes,
    DeviceRecord,
    DeviceType,
    EngineMode,
    IndexKind,
)
from .store import DeviceStore

__all__ = [
    "__version__",
    "ConsistencyReport",
    "CorruptRecord",
    "DeviceAttributes",
    "DeviceRecord",
    "DeviceStore",
    "DeviceType",
    "EngineFailure",
    "EngineMode",
    "EngineUnavailable",
    "IndexKind",
    "InvalidArgument",
    "NotFound",
    "StoreConfig",
    "StoreFailure",
    "UNKNOWN",
    "UdevDBError",
    "get_config",
    "reload_config",
    "setup_logging",
]
