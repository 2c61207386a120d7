from app.models.company import Company
from app.models.user import User
from app.models.hierarchy import Hierarchy, HierarchyLevel
from app.models.device import Device, DeviceDataMapping, DeviceType
from app.models.reading import DeviceData, DeviceLatest
from app.models.alarm import AlarmStatus, AlarmType, DeviceAlarm
from app.models.widget import Dashboard, DashboardLayout, WidgetDefinition, WidgetType

__all__ = [
    "Company",
    "User",
    "Hierarchy",
    "HierarchyLevel",
    "Device",
    "DeviceDataMapping",
    "DeviceType",
    "DeviceData",
    "DeviceLatest",
    "AlarmStatus",
    "AlarmType",
    "DeviceAlarm",
    "Dashboard",
    "DashboardLayout",
    "WidgetDefinition",
    "WidgetType",
]
