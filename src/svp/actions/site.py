"""Site Action - create a site's vhost and switch its PHP version.

CONTRACT:
- read_only: False (MODIFIES SERVER)
- requires_backup: True
- rollback_support: True
- prerequisites: ["apt-based host", "PHP packages available for the version"]

Rendering the vhost from the template discards what `svp auth` and
certbot added to the old file. Both are put back on the new one:
1. auth directives, when the site's .htpasswd exists
2. the certificate, via `certbot install` followed by SSL hardening

The PHP version and webroot of an existing site are read from its vhost
(the `include snippets/php{version}-fpm.conf;` line and the first
`root` directive); no separate site record is kept.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from svp.actions.ssl import SSLAction
from svp.actions.vhost import ActionContract, VhostTransaction
from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.editor.auth import AuthDirectiveEditor
from svp.errors import SVPError
from svp.output import StatusPrinter
from svp.parser.block_scanner import ConfigBlockScanner
from svp.services.certbot import CertbotService
from svp.services.htpasswd import HtpasswdService
from svp.services.nginx import NginxService
from svp.services.php import PHPService

PHP_SNIPPET_RE = re.compile(r"^include\s+snippets/php([\d.]+)-fpm\.conf;")

Confirm = Callable[[str], bool]


@dataclass
class SiteState:
    """What an existing vhost says about its site."""

    php_version: str | None = None
    webroot: str | None = None
    aliases: list[str] = field(default_factory=list)


def read_site_state(domain: str, lines: list[str], scanner: ConfigBlockScanner | None = None) -> SiteState:
    scan = (scanner or ConfigBlockScanner()).analyze(lines)
    state = SiteState()

    for info in scan.lines:
        match = PHP_SNIPPET_RE.match(info.stripped)
        if match and info.in_server_body:
            state.php_version = match.group(1)
            break

    for block in scan.blocks:
        if state.webroot is None and block.root_lines:
            root = scan.lines[block.root_lines[0]].stripped
            state.webroot = root[len("root"):].split(";", 1)[0].strip()
        for name in block.server_names:
            if name != domain and name not in state.aliases:
                state.aliases.append(name)

    return state


class SiteAction:
    """Provision a domain's vhost and PHP-FPM pool.

    `confirm` asks a yes/no question before a PHP version switch.
    Without it the switch proceeds unasked.
    """

    CONTRACT = ActionContract(
        read_only=False,
        requires_backup=True,
        rollback_support=True,
        prerequisites=["apt-based host", "PHP packages available for the version"],
    )

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        printer: StatusPrinter | None = None,
        nginx: NginxService | None = None,
        php: PHPService | None = None,
        certbot: CertbotService | None = None,
        htpasswd: HtpasswdService | None = None,
        confirm: Confirm | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.nginx = nginx or NginxService(connector, self.settings, self.printer)
        self.php = php or PHPService(connector, self.settings, self.printer)
        self.certbot = certbot or CertbotService(connector, self.settings, self.printer)
        self.htpasswd = htpasswd or HtpasswdService(connector, self.printer)
        self.transaction = VhostTransaction(connector, self.settings, self.nginx, self.printer)
        self.ssl = SSLAction(connector, self.settings, self.printer, nginx=self.nginx, certbot=self.certbot)
        self.auth_editor = AuthDirectiveEditor()
        self.confirm = confirm

    def create(
        self,
        domain: str,
        php_version: str | None = None,
        webroot: str | None = None,
        aliases: list[str] | None = None,
        force: bool = False,
    ) -> str:
        """Install nginx and PHP, create the FPM pool and write the vhost.

        An existing vhost is only replaced with `force`. It is backed up
        first, and its aliases, auth and SSL carry over to the new file.

        Returns:
            Path of the vhost in sites-available.

        Raises:
            SVPError: The vhost exists and `force` is not set, or the
                webroot could not be created.
            ValidationFailedError: The new vhost failed `nginx -t`. The
                previous file, if any, has been restored.
        """
        php_version = php_version or self.settings.php_version
        webroot = webroot or self.settings.docroot(domain)
        path = self.transaction.path(domain)

        existing = self.connector.read_file(path)
        if existing is not None:
            if not force:
                raise SVPError(
                    f"vhost already exists: {path}",
                    output="use --force to recreate it (the current file is backed up first)",
                )
            if aliases is None:
                aliases = read_site_state(domain, existing.split("\n")).aliases

        self.printer.section(f"Site setup for {domain}")
        self.nginx.install()
        self.php.install(php_version)

        if not self.connector.dir_exists(webroot):
            self.printer.log(f"Creating webroot: {webroot}")
            if not self.connector.make_dirs(webroot):
                raise SVPError(f"failed to create webroot: {webroot}")
        else:
            self.printer.verify(f"Webroot exists: {webroot}")

        self.php.create_pool(domain, php_version, webroot)
        self.nginx.ensure_snippets(php_version)
        self._render(domain, webroot, php_version, aliases or [], existing)

        self.printer.ok(f"Vhost ready: {path}")
        return path

    def update_php(self, domain: str, version: str) -> bool:
        """Move a site to another PHP version.

        Returns False when the site already runs that version or the
        operator declined.

        Raises:
            VhostNotFoundError: The domain has no vhost.
            CommandError: Installing PHP or creating the pool failed.
                The vhost is untouched at that point.
            ValidationFailedError: The re-rendered vhost failed
                `nginx -t`. The previous file has been restored.
        """
        self.printer.section("PHP Version Update")
        content = self.transaction.read(domain)
        state = read_site_state(domain, content.split("\n"))
        current = state.php_version
        webroot = state.webroot or self.settings.docroot(domain)

        self.printer.ok(f"Found configuration for {domain}")
        self.printer.info(f"Current PHP version: {current or 'unknown'}")
        self.printer.info(f"New PHP version: {version}")
        self.printer.info(f"Webroot: {webroot}")

        if current == version:
            self.printer.skip(f"Domain {domain} is already using PHP {version}")
            return False

        question = f"Update {domain} from PHP {current or 'unknown'} to PHP {version}?"
        if self.confirm is not None and not self.confirm(question):
            self.printer.skip("PHP update cancelled")
            return False

        self.printer.section(f"Installing PHP {version}")
        self.php.install(version)

        self.printer.section("Creating PHP-FPM Pool")
        self.php.create_pool(domain, version, webroot)

        self.printer.section("Updating Nginx Configuration")
        self.nginx.ensure_snippets(version)
        self._render(domain, webroot, version, state.aliases, content)

        if current:
            self.printer.section("Cleaning Up Old PHP Pool")
            self.php.remove_pool(domain, current)

        self.printer.ok("PHP Update Complete!")
        self.printer.info(f"Domain: {domain}")
        self.printer.info(f"Old PHP Version: {current or 'unknown'}")
        self.printer.info(f"New PHP Version: {version}")
        return True

    def _render(
        self,
        domain: str,
        webroot: str,
        php_version: str,
        aliases: list[str],
        existing: str | None,
    ) -> None:
        """Write the vhost from the template, then restore auth and SSL.

        Any failure after the write puts `existing` back before the
        error propagates.
        """
        path = self.transaction.path(domain)
        backup_path = None
        if existing is not None:
            backup_path = self.transaction.backup(path, existing)
            self.printer.log(f"Backed up current vhost to {backup_path}")

        self.nginx.create_vhost(domain, webroot, php_version, aliases)
        try:
            self._restore_auth(domain)
            self._restore_ssl(domain, webroot)
        except SVPError:
            if existing is not None:
                self.transaction.restore(path, existing, backup_path)
            raise

    def _restore_auth(self, domain: str) -> None:
        htpasswd_path = self.settings.htpasswd_path(domain)
        if not self.htpasswd.exists(htpasswd_path):
            self.printer.skip("Basic authentication not configured")
            return

        self.printer.log("Restoring basic authentication...")
        self.transaction.mutate(domain, [lambda lines: self.auth_editor.apply(lines, True, htpasswd_path)])
        self.printer.ok(f"Basic authentication restored ({htpasswd_path})")

    def _restore_ssl(self, domain: str, webroot: str) -> None:
        if not self.certbot.has_certificate(domain):
            self.printer.skip(f"No SSL certificate for {domain}")
            self.nginx.test_and_reload()
            return

        self.printer.log("Restoring SSL configuration...")
        self.certbot.install_to_nginx(domain)
        self.ssl.harden(domain, webroot)
