"""Importing this module registers every table on ``Base.metadata``."""
from inventory.models.column_definition import ColumnDefinition, ColumnPossibleValue
from inventory.models.device import DeviceKeyInfo
from inventory.models.device_attachment import DeviceAttachment
from inventory.models.device_change_log import DeviceChange
from inventory.models.device_component import DeviceComponent
from inventory.models.device_data import DeviceData
from inventory.models.location import Location
from inventory.models.user import User

__all__ = [
    "ColumnDefinition",
    "ColumnPossibleValue",
    "DeviceAttachment",
    "DeviceChange",
    "DeviceComponent",
    "DeviceData",
    "DeviceKeyInfo",
    "Location",
    "User",
]
