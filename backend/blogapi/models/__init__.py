from blogapi.models.user import User
from blogapi.models.device_session import DeviceAuthSession
from blogapi.models.attempt import Attempt

__all__ = [
    "User",
    "DeviceAuthSession",
    "Attempt",
]
