"""Auth Action - HTTP basic authentication for a site.

CONTRACT:
- read_only: False (MODIFIES SERVER)
- requires_backup: True
- rollback_support: True
- prerequisites: ["site directory exists", "vhost exists"]
"""

from dataclasses import dataclass

from svp.actions.vhost import ActionContract, VhostTransaction
from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.editor.auth import AuthDirectiveEditor
from svp.errors import MalformedConfigError, SVPError
from svp.model.vhost import MutationResult
from svp.output import StatusPrinter
from svp.services.htpasswd import HtpasswdService
from svp.services.nginx import NginxService

ACTIONS = ("enable", "disable", "check")


@dataclass
class AuthStatus:
    """What `check` found for a domain."""

    domain: str
    htpasswd_path: str
    enabled: bool = False
    username: str | None = None
    configured: bool | None = None  # None when the vhost is missing


class AuthAction:
    """Enable, disable or inspect basic auth for one domain."""

    CONTRACT = ActionContract(
        read_only=False,
        requires_backup=True,
        rollback_support=True,
        prerequisites=["site directory exists", "vhost exists"],
    )

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        printer: StatusPrinter | None = None,
        nginx: NginxService | None = None,
        htpasswd: HtpasswdService | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.nginx = nginx or NginxService(connector, self.settings, self.printer)
        self.htpasswd = htpasswd or HtpasswdService(connector, self.printer)
        self.transaction = VhostTransaction(connector, self.settings, self.nginx, self.printer)
        self.editor = AuthDirectiveEditor()

    def run(self, domain: str, action: str, username: str = "", password: str = "") -> None:
        """Dispatch one of enable, disable or check."""
        if action not in ACTIONS:
            raise SVPError(f"invalid action: {action} (must be enable, disable, or check)")

        self.printer.section(f"Basic Authentication for {domain}")
        if action == "enable":
            self.enable(domain, username, password)
        elif action == "disable":
            self.disable(domain)
        else:
            self.check(domain)

    def enable(self, domain: str, username: str, password: str) -> MutationResult:
        """Write the password file and add auth directives to the vhost.

        Raises:
            SVPError: Missing credentials or site directory.
            MalformedConfigError: No server_name line to anchor on.
            ValidationFailedError: nginx rejected the result; the vhost
                was restored.
        """
        site_dir = self.settings.site_dir(domain)
        if not self.connector.dir_exists(site_dir):
            raise SVPError(f"site directory not found: {site_dir}")
        if not username:
            raise SVPError("username is required")
        if not password:
            raise SVPError("password is required")

        self.htpasswd.install()

        htpasswd_path = self.settings.htpasswd_path(domain)
        self.printer.log("Creating/updating .htpasswd file...")
        self.htpasswd.write(htpasswd_path, username, password)
        self.printer.ok(".htpasswd file created/updated")

        self.printer.log("Updating nginx configuration...")
        mutation = self.transaction.mutate(
            domain, [lambda lines: self.editor.apply(lines, True, htpasswd_path)]
        )
        edit = mutation.results[0]
        if not edit.applied:
            raise MalformedConfigError(
                f"cannot add auth directives to {mutation.path}", output=edit.detail
            )
        if edit.existed:
            self.printer.ok("Nginx configuration updated (auth directives replaced)")
        else:
            self.printer.ok("Nginx configuration updated (auth directives added)")

        self.transaction.commit(mutation)

        self.printer.ok(f"Basic authentication enabled for {domain}")
        self.printer.info(f"Username: {username}")
        self.printer.info(f"Password file: {htpasswd_path}")
        return mutation

    def disable(self, domain: str) -> MutationResult | None:
        """Remove the password file and the auth directives.

        Returns None, after a warning, when auth was not enabled.
        """
        htpasswd_path = self.settings.htpasswd_path(domain)
        if not self.htpasswd.exists(htpasswd_path):
            self.printer.warn(f"Basic authentication not enabled for {domain}")
            return None

        self.printer.log("Removing .htpasswd file...")
        if self.htpasswd.remove(htpasswd_path):
            self.printer.ok(".htpasswd file removed")
        else:
            self.printer.warn(f"Failed to remove .htpasswd file: {htpasswd_path}")

        self.printer.log("Updating nginx configuration...")
        mutation = self.transaction.apply(domain, [lambda lines: self.editor.apply(lines, False)])
        if mutation.applied:
            self.printer.ok("Nginx configuration updated (auth directives removed)")
        else:
            self.printer.verify("No auth directives found in nginx configuration")

        self.printer.ok(f"Basic authentication disabled for {domain}")
        return mutation

    def check(self, domain: str) -> AuthStatus:
        htpasswd_path = self.settings.htpasswd_path(domain)
        status = AuthStatus(domain=domain, htpasswd_path=htpasswd_path)

        if not self.htpasswd.exists(htpasswd_path):
            self.printer.warn(f"Basic authentication not enabled for {domain}")
            self.printer.info(f"To enable authentication, run: svp auth {domain} enable")
            return status

        status.enabled = True
        status.username = self.htpasswd.username(htpasswd_path)
        self.printer.ok(f"Basic authentication is enabled for {domain}")
        self.printer.info(f"Password file: {htpasswd_path}")
        if status.username:
            self.printer.info(f"Username: {status.username}")

        content = self.connector.read_file(self.transaction.path(domain))
        if content is not None:
            status.configured = self.editor.is_enabled(content.split("\n"))
            if status.configured:
                self.printer.info("Nginx configuration: Configured")
            else:
                self.printer.warn("Nginx configuration missing auth_basic directives")

        self.printer.info(
            f"To update credentials, run: svp auth {domain} enable --username USER --password PASS"
        )
        self.printer.info(f"To disable authentication, run: svp auth {domain} disable")
        return status
