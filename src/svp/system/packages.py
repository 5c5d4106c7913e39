"""Debian package detection and installation."""

import shlex

from svp.connector import Connector
from svp.errors import CommandError


class PackageManager:
    """dpkg queries and apt-get installs."""

    def __init__(self, connector: Connector) -> None:
        self.connector = connector

    def is_installed(self, package: str) -> bool:
        """True if dpkg reports the package as installed (`ii`)."""
        result = self.connector.run(f"dpkg -l {shlex.quote(package)}")
        if not result.success:
            return False
        return f"ii  {package}" in result.stdout

    def update(self) -> bool:
        """Refresh the apt cache. False when apt-get update failed."""
        return self.connector.run("DEBIAN_FRONTEND=noninteractive apt-get update -y").success

    def install(self, packages: list[str], no_recommends: bool = False) -> None:
        """Install packages non-interactively.

        Raises:
            CommandError: apt-get failed.
        """
        flags = "-y --no-install-recommends" if no_recommends else "-y"
        names = " ".join(shlex.quote(p) for p in packages)
        result = self.connector.run(f"DEBIAN_FRONTEND=noninteractive apt-get install {flags} {names}")
        if not result.success:
            raise CommandError.from_result(f"failed to install {', '.join(packages)}", result)

    def missing(self, packages: list[str]) -> list[str]:
        return [p for p in packages if not self.is_installed(p)]
