"""
Fixed-layout byte encoding of index values.

String fields are NUL-padded to their capacity; numeric fields are
little-endian signed 32-bit integers.
"""

import struct

from pydantic import ValidationError

from .errors import CorruptRecord, InvalidArgument
from .keys import (
    BUS_SIZE,
    ID_SIZE,
    NAME_SIZE,
    PATH_SIZE,
    bus_key,
    check_bounded,
    class_key,
    sysfs_key,
)
from .models import DeviceRecord, DeviceType

# Value of every secondary index entry: the device name.
NAME_RECORD = struct.Struct(f"<{NAME_SIZE}s")

# Value of the primary index entry. The name itself is the key.
DEVICE_RECORD = struct.Struct(
    f"<{PATH_SIZE}s"   # sysfs_path
    f"{PATH_SIZE}s"    # device_path
    f"{NAME_SIZE}s"    # class_dev_name
    f"{NAME_SIZE}s"    # class_name
    f"{BUS_SIZE}s"     # bus_name
    f"{ID_SIZE}s"      # bus_id
    f"{NAME_SIZE}s"    # driver
    "c"                # type
    "iii"              # major, minor, mode
)

_STRING_FIELDS = (
    ("sysfs_path", PATH_SIZE),
    ("device_path", PATH_SIZE),
    ("class_dev_name", NAME_SIZE),
    ("class_name", NAME_SIZE),
    ("bus_name", BUS_SIZE),
    ("bus_id", ID_SIZE),
    ("driver", NAME_SIZE),
)


def _unpad(raw: bytes, field: str) -> str:
    try:
        return raw.split(b"\0", 1)[0].decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptRecord(f"{field} is not valid UTF-8") from e


def encode_name_record(name: str) -> bytes:
    return NAME_RECORD.pack(check_bounded(name, NAME_SIZE, "name"))


def decode_name_record(data: bytes) -> str:
    if len(data) != NAME_RECORD.size:
        raise CorruptRecord(
            f"name record is {len(data)} bytes, expected {NAME_RECORD.size}"
        )
    (raw,) = NAME_RECORD.unpack(data)
    name = _unpad(raw, "name")
    if not name:
        raise CorruptRecord("name record is empty")
    return name


def encode_device_record(record: DeviceRecord) -> bytes:
    """
    Encode a device record for the primary index.

    Raises:
        InvalidArgument: if a string field does not fit its capacity
    """
    strings = [
        check_bounded(getattr(record, field), size, field.replace("_", " "))
        for field, size in _STRING_FIELDS
    ]
    try:
        return DEVICE_RECORD.pack(
            *strings,
            DeviceType(record.type).value.encode("ascii"),
            record.major,
            record.minor,
            record.mode,
        )
    except struct.error as e:
        raise InvalidArgument(f"cannot encode record for {record.name}: {e}") from e


def decode_device_record(name: str, data: bytes) -> DeviceRecord:
    """
    Decode a primary index value into a fresh DeviceRecord.

    Raises:
        CorruptRecord: if data does not match the record layout or its
            fields do not form valid index keys
    """
    if len(data) != DEVICE_RECORD.size:
        raise CorruptRecord(
            f"record for {name} is {len(data)} bytes, expected {DEVICE_RECORD.size}"
        )
    fields = DEVICE_RECORD.unpack(data)
    strings = {
        field: _unpad(raw, field)
        for (field, _), raw in zip(_STRING_FIELDS, fields)
    }
    type_tag, major, minor, mode = fields[len(_STRING_FIELDS):]
    try:
        record = DeviceRecord(
            name=name,
            type=type_tag.decode("ascii"),
            major=major,
            minor=minor,
            mode=mode,
            **strings,
        )
    except (UnicodeDecodeError, ValidationError) as e:
        raise CorruptRecord(f"record for {name} has invalid fields: {e}") from e
    # The index keys a record implies have to be valid too.
    try:
        bus_key(record.bus_name, record.bus_id)
        class_key(record.class_name, record.class_dev_name)
        sysfs_key(record.sysfs_path)
    except InvalidArgument as e:
        raise CorruptRecord(f"record for {name} implies an invalid index key: {e}") from e
    return record
