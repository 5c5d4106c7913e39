"""Nginx Service - install, validate, reload and template vhosts.

`test_config` and `reload` are the two calls every vhost mutation ends
with; nothing in this module edits existing vhost text.
"""

import shlex

from svp.config import ProvisionerSettings
from svp.connector import CommandResult, Connector
from svp.errors import CommandError, ReloadFailedError, ValidationFailedError
from svp.output import StatusPrinter
from svp.services.templates import template_environment
from svp.system.packages import PackageManager
from svp.system.services import ServiceManager


class NginxService:
    """Nginx collaborator for the provisioning actions."""

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

    def vhost_path(self, domain: str) -> str:
        return self.settings.vhost_path(domain)

    def enabled_path(self, domain: str) -> str:
        return f"{self.settings.sites_enabled}/{domain}.conf"

    def install(self, verify_only: bool = False) -> None:
        """Install nginx if absent and make sure it runs."""
        if self.packages.is_installed("nginx"):
            self.printer.verify("Nginx already installed")
            self.services.ensure_running("nginx", verify_only)
            return

        if verify_only:
            self.printer.fail("Nginx not installed")
            raise CommandError("nginx not installed")

        self.printer.log("Installing Nginx...")
        self.packages.install(["nginx"], no_recommends=True)
        self.services.enable("nginx")
        self.services.start("nginx")
        self.printer.ok("Nginx installed and running")

    def test_config(self) -> CommandResult:
        """Run `nginx -t`. The caller decides what a failure means."""
        return self.connector.run("nginx -t")

    def reload(self) -> None:
        """Reload nginx, falling back to `nginx -s reload`.

        Raises:
            ReloadFailedError: Neither reload method succeeded.
        """
        result = self.connector.run("systemctl reload nginx")
        if result.success:
            return

        fallback = self.connector.run("nginx -s reload")
        if not fallback.success:
            raise ReloadFailedError("failed to reload nginx", output=result.output or fallback.output)

    def test_and_reload(self) -> None:
        """Validate the config, then reload only if it passed.

        Raises:
            ValidationFailedError: `nginx -t` failed; nginx was not reloaded.
            ReloadFailedError: The reload itself failed.
        """
        self.printer.log("Testing Nginx configuration...")
        result = self.test_config()
        if not result.success:
            self.printer.fail("Nginx configuration test failed")
            raise ValidationFailedError("nginx config test failed", output=result.output)
        self.printer.ok("Nginx configuration is valid")

        self.printer.log("Reloading Nginx...")
        self.reload()
        self.printer.ok("Nginx reloaded successfully")

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    def render(self, template: str, **context: object) -> str:
        return self.env.get_template(template).render(**context)

    def render_vhost(
        self,
        domain: str,
        webroot: str,
        php_version: str,
        extra_domains: list[str] | None = None,
    ) -> str:
        return self.render(
            "vhost.conf.j2",
            domain=domain,
            server_names=[domain, *(extra_domains or [])],
            webroot=webroot,
            pool=domain,
            php_version=php_version,
        )

    def ensure_snippets(self, php_version: str) -> None:
        """Write the PHP-FPM and security-header snippets if missing."""
        snippets_dir = self.settings.snippets_dir
        if not self.connector.make_dirs(snippets_dir):
            raise CommandError(f"failed to create snippets directory: {snippets_dir}")

        snippets = [
            (f"{snippets_dir}/php{php_version}-fpm.conf", "php-fpm.conf.j2", "PHP-FPM snippet"),
            (f"{snippets_dir}/security-headers.conf", "security-headers.conf.j2", "Security headers snippet"),
        ]
        for path, template, label in snippets:
            if self.connector.file_exists(path):
                self.printer.verify(f"{label} already exists")
                continue
            self.printer.log(f"Creating {label}: {path}")
            if not self.connector.write_file(path, self.render(template, php_version=php_version)):
                raise CommandError(f"failed to create {label}: {path}")

    def create_vhost(
        self,
        domain: str,
        webroot: str,
        php_version: str,
        extra_domains: list[str] | None = None,
    ) -> str:
        """Write the HTTP vhost for a domain and enable it.

        Returns:
            Path of the vhost in sites-available.
        """
        vhost_path = self.vhost_path(domain)
        enabled_path = self.enabled_path(domain)

        if self.connector.file_exists(vhost_path):
            self.printer.log(f"Updating Nginx vhost for {domain}")
        else:
            self.printer.log(f"Creating Nginx vhost for {domain}")

        content = self.render_vhost(domain, webroot, php_version, extra_domains)
        if not self.connector.write_file(vhost_path, content):
            raise CommandError(f"failed to create vhost config: {vhost_path}")

        if not self.connector.file_exists(enabled_path):
            self.printer.log(f"Enabling site {domain}")
            result = self.connector.run(f"ln -sf {shlex.quote(vhost_path)} {shlex.quote(enabled_path)}")
            if not result.success:
                raise CommandError.from_result("failed to enable site", result)

        return vhost_path
