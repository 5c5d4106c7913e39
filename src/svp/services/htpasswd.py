"""Htpasswd Service - password files for nginx basic auth."""

import shlex

from svp.connector import Connector
from svp.errors import CommandError
from svp.output import StatusPrinter
from svp.system.packages import PackageManager


class HtpasswdService:
    """Create, inspect and remove `.htpasswd` files via apache2-utils."""

    PACKAGE = "apache2-utils"

    def __init__(self, connector: Connector, printer: StatusPrinter | None = None) -> None:
        self.connector = connector
        self.printer = printer or StatusPrinter()
        self.packages = PackageManager(connector)

    def install(self) -> None:
        if self.packages.is_installed(self.PACKAGE):
            self.printer.verify(f"{self.PACKAGE} already installed")
            return

        self.printer.log(f"Installing {self.PACKAGE} (provides htpasswd)...")
        self.packages.install([self.PACKAGE])
        self.printer.ok(f"{self.PACKAGE} installed")

    def write(self, path: str, username: str, password: str) -> None:
        """(Re)create the file with a single bcrypt entry."""
        # -c always recreates, keeping exactly one user
        result = self.connector.run(
            f"htpasswd -cbB {shlex.quote(path)} {shlex.quote(username)} {shlex.quote(password)}",
            secrets=[password],
        )
        if not result.success:
            raise CommandError.from_result("failed to create .htpasswd file", result)

    def exists(self, path: str) -> bool:
        return self.connector.file_exists(path)

    def username(self, path: str) -> str | None:
        """First username stored in the file."""
        content = self.connector.read_file(path)
        if not content:
            return None
        first = content.strip().split("\n", 1)[0]
        return first.split(":", 1)[0] or None

    def remove(self, path: str) -> bool:
        return self.connector.remove_file(path)
