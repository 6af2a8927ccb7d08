"""
Device database data models.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

# Largest value a stored numeric field can hold (signed 32-bit).
INT_FIELD_MAX = 2**31 - 1

# Substituted for bus name and driver when discovery did not report them.
UNKNOWN = "unknown"


class DeviceType(str, Enum):
    """Device node types."""

    CHAR = "c"
    BLOCK = "b"


class EngineMode(str, Enum):
    """Ways the backing key-value engine can be opened."""

    PERSISTENT = "persistent"
    IN_MEMORY = "in_memory"


class IndexKind(str, Enum):
    """The four indices kept for every device."""

    NAME = "name"
    BUS = "bus"
    CLASS = "class"
    SYSFS = "sysfs"


SECONDARY_KINDS = (IndexKind.BUS, IndexKind.CLASS, IndexKind.SYSFS)


class DeviceAttributes(BaseModel):
    """
    Attributes reported by device discovery for a single class device.

    Only ``class_dev_name`` is always known; everything discovery could not
    determine is left unset.
    """

    class_dev_name: str = Field(..., description="Class device name (e.g. ttyS0)")
    class_name: str = Field("", description="Class the device belongs to (e.g. tty)")
    device_path: Optional[str] = Field(
        None, description="sysfs directory of the physical device, if any"
    )
    bus_name: Optional[str] = Field(None, description="Bus type (pci, usb, ...)")
    bus_id: Optional[str] = Field(None, description="Device id on its bus")
    driver: Optional[str] = Field(None, description="Bound driver name")

    class Config:
        json_schema_extra = {
            "example": {
                "class_dev_name": "eth0",
                "class_name": "net",
                "device_path": "/sys/devices/pci0000:00/0000:00:01.0",
                "bus_name": "pci",
                "bus_id": "0000:00:01.0",
                "driver": "e1000",
            }
        }


class DeviceRecord(BaseModel):
    """
    Canonical record stored for a device, keyed by its assigned name.
    """

    name: str = Field(..., description="Assigned device name")
    sysfs_path: str = Field(..., description="Discovery path the device was added under")
    device_path: str = Field("", description="sysfs directory of the physical device")
    class_dev_name: str = Field("", description="Class device name")
    class_name: str = Field("", description="Class name")
    bus_name: str = Field(UNKNOWN, description="Bus type name")
    bus_id: str = Field("", description="Bus id")
    driver: str = Field(UNKNOWN, description="Driver name")
    type: DeviceType = Field(..., description="Device node type")
    major: int = Field(..., ge=0, le=INT_FIELD_MAX, description="Major number")
    minor: int = Field(..., ge=0, le=INT_FIELD_MAX, description="Minor number")
    mode: int = Field(..., ge=0, le=INT_FIELD_MAX, description="Permission mode")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "ttyS0",
                "sysfs_path": "/sys/class/tty/ttyS0",
                "device_path": "",
                "class_dev_name": "ttyS0",
                "class_name": "tty",
                "bus_name": "unknown",
                "bus_id": "",
                "driver": "unknown",
                "type": "c",
                "major": 4,
                "minor": 64,
                "mode": 0o660,
            }
        }


class IndexEntry(BaseModel):
    """A single index entry reported by a consistency check."""

    kind: IndexKind
    key: str
    name: Optional[str] = None
    reason: str = ""


class ConsistencyReport(BaseModel):
    """
    Result of cross-checking the secondary indices against primary records.
    """

    # Secondary entries whose name has no primary record (or is unreadable)
    dangling: List[IndexEntry] = Field(default_factory=list)
    # Secondary entries pointing at a record that now implies another key
    stale: List[IndexEntry] = Field(default_factory=list)
    # Keys implied by a primary record that don't resolve back to it
    orphaned: List[IndexEntry] = Field(default_factory=list)
    # Primary records that could not be decoded
    corrupt: List[str] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not (self.dangling or self.stale or self.orphaned or self.corrupt)
