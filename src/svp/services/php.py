"""PHP Service - PHP-FPM packages and per-site pools.

Every site runs in its own FPM pool listening on
/run/php/php{version}-fpm-{domain}.sock. The vhost reaches it through
the `php{version}-fpm.conf` snippet, which builds the socket path from
the vhost's `$pool` variable.
"""

import shlex

from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.errors import CommandError
from svp.output import StatusPrinter
from svp.services.templates import template_environment
from svp.system.packages import PackageManager
from svp.system.services import ServiceManager

PHP_EXTENSIONS = [
    "fpm",
    "cli",
    "common",
    "mbstring",
    "xml",
    "gd",
    "curl",
    "zip",
    "intl",
    "sqlite3",
    "readline",
    "mysql",
    "opcache",
]

SOCKET_DIR = "/run/php"


def php_packages(version: str) -> list[str]:
    return [f"php{version}-{ext}" for ext in PHP_EXTENSIONS]


class PHPService:
    """Install PHP versions and manage one FPM pool per domain."""

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        printer: StatusPrinter | None = None,
        template_dir: str | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.packages = PackageManager(connector)
        self.services = ServiceManager(connector, self.printer)
        self.env = template_environment(template_dir)

    def service_name(self, version: str) -> str:
        return f"php{version}-fpm"

    def socket_path(self, domain: str, version: str) -> str:
        return f"{SOCKET_DIR}/php{version}-fpm-{domain}.sock"

    def install(self, version: str, verify_only: bool = False) -> None:
        """Install the PHP packages for a version and make sure FPM runs."""
        missing = self.packages.missing(php_packages(version))

        if not missing:
            self.printer.verify(f"PHP {version} packages already installed")
        elif verify_only:
            self.printer.fail(f"Missing PHP {version} packages: {', '.join(missing)}")
            raise CommandError(f"missing PHP {version} packages")
        else:
            self.printer.log("Updating package cache...")
            if not self.packages.update():
                self.printer.warn("Failed to update package cache")
            self.printer.log(f"Installing PHP {version} packages: {', '.join(missing)}")
            self.packages.install(missing, no_recommends=True)
            self.printer.ok(f"PHP {version} packages installed")

        self.services.ensure_running(self.service_name(version), verify_only)

    def render_pool(self, domain: str, version: str, webroot: str) -> str:
        # open_basedir covers the project root so vendor/ next to the docroot stays readable
        project_root = webroot
        subdir = self.settings.docroot_subdir
        if subdir and webroot.endswith(f"/{subdir}"):
            project_root = webroot[: -len(subdir) - 1]

        return self.env.get_template("php-pool.conf.j2").render(
            domain=domain,
            php_version=version,
            socket_path=self.socket_path(domain, version),
            project_root=project_root,
        )

    def create_pool(self, domain: str, version: str, webroot: str) -> str:
        """Write the site's pool file and restart FPM so the socket appears.

        Returns:
            Path of the pool file.

        Raises:
            CommandError: The file could not be written, FPM did not
                restart, or the socket is missing afterwards.
        """
        pool_path = self.settings.php_pool_path(domain, version)
        if self.connector.file_exists(pool_path):
            self.printer.log(f"Updating PHP {version} pool for {domain}")
        else:
            self.printer.log(f"Creating PHP {version} pool for {domain}")

        if not self.connector.write_file(pool_path, self.render_pool(domain, version, webroot)):
            raise CommandError(f"failed to create PHP pool: {pool_path}")

        service = self.service_name(version)
        self.printer.log(f"Restarting {service} to load pool...")
        self.services.restart(service)

        socket = self.socket_path(domain, version)
        if not self.connector.run(f"test -S {shlex.quote(socket)}").success:
            raise CommandError(f"PHP-FPM socket was not created: {socket} (check PHP-FPM logs)")

        self.printer.ok(f"PHP pool configured for {domain}")
        return pool_path

    def remove_pool(self, domain: str, version: str) -> bool:
        """Delete a site's pool for one version and restart that FPM.

        Failures are warnings: the new pool is already serving the site.
        Returns False when there was no pool to remove.
        """
        pool_path = self.settings.php_pool_path(domain, version)
        if not self.connector.file_exists(pool_path):
            self.printer.verify(f"No PHP {version} pool for {domain}")
            return False

        self.printer.log(f"Removing old PHP {version} pool for {domain}")
        if not self.connector.remove_file(pool_path):
            self.printer.warn(f"Failed to remove old pool file: {pool_path}")
            return False

        service = self.service_name(version)
        try:
            self.services.restart(service)
        except CommandError as e:
            self.printer.warn(f"Failed to restart old PHP-FPM service: {e.message}")
        else:
            self.printer.ok("Old PHP pool removed")
        return True
