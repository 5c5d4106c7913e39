"""System package - apt packages and systemd services on the target host."""

from svp.system.packages import PackageManager
from svp.system.services import ServiceManager

__all__ = ["PackageManager", "ServiceManager"]
