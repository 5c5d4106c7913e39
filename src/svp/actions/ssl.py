"""SSL Action - Let's Encrypt lifecycle of a domain.

CONTRACT:
- read_only: False (MODIFIES SERVER)
- requires_backup: True
- rollback_support: True
- prerequisites: ["vhost exists", "DNS points to this server (enable)"]

Lifecycle of a domain's HTTPS setup:

    no certificate --(obtain + install)--> HTTPS configured
    HTTPS configured --(docroot fix, enhance)--> HTTPS hardened
    configured | hardened --(strip)--> no certificate (files stay on disk)
"""

from collections.abc import Callable

from svp.actions.vhost import ActionContract, VhostTransaction
from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.editor.ssl import SSLBlockStripper, SSLDocrootFixer, SSLEnhancer
from svp.errors import CommandError, MalformedConfigError, SVPError, ValidationFailedError
from svp.model.vhost import MutationResult
from svp.output import StatusPrinter
from svp.services.certbot import CertbotService, CertificateInfo
from svp.services.nginx import NginxService

ACTIONS = ("enable", "disable", "renew", "check")

Prompt = Callable[[str], str]


class SSLAction:
    """Enable, disable, renew or inspect HTTPS for one domain.

    `prompt` asks the operator a question and returns the answer. It is
    used for a missing Let's Encrypt email and for the DNS mismatch
    menu. Without it those situations are errors.
    """

    CONTRACT = ActionContract(
        read_only=False,
        requires_backup=True,
        rollback_support=True,
        prerequisites=["vhost exists", "DNS points to this server (enable)"],
    )

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        printer: StatusPrinter | None = None,
        nginx: NginxService | None = None,
        certbot: CertbotService | None = None,
        prompt: Prompt | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.nginx = nginx or NginxService(connector, self.settings, self.printer)
        self.certbot = certbot or CertbotService(connector, self.settings, self.printer)
        self.transaction = VhostTransaction(connector, self.settings, self.nginx, self.printer)
        self.prompt = prompt
        self.stripper = SSLBlockStripper()
        self.fixer = SSLDocrootFixer()
        self.enhancer = SSLEnhancer()

    def run(self, domain: str, action: str, email: str = "") -> None:
        """Dispatch one of enable, disable, renew or check."""
        if action not in ACTIONS:
            raise SVPError(f"invalid action: {action} (must be enable, disable, renew, or check)")

        self.printer.section(f"SSL Management for {domain}")
        self.certbot.install()

        if action == "enable":
            self.enable(domain, email)
        elif action == "disable":
            self.disable(domain)
        elif action == "renew":
            self.renew(domain)
        else:
            self.check(domain)

    def enable(self, domain: str, email: str = "") -> None:
        """Obtain (or reuse) a certificate, install it and harden the vhost.

        Docroot and hardening problems are reported as warnings; the
        certificate stays installed.
        """
        self.printer.section("Enabling SSL")

        if self.certbot.has_certificate(domain):
            self.printer.warn(f"SSL certificate already exists for {domain}")
            self.printer.log("Reconfiguring nginx with existing certificate...")
            self.certbot.install_to_nginx(domain)
            self.harden(domain)
            self.printer.ok(f"SSL enabled for {domain}")
            return

        if not email and self.prompt is not None:
            email = self.prompt("Please enter an email address for Let's Encrypt notifications")
        if not email:
            raise SVPError("email address is required to obtain SSL certificate")

        self.verify_dns(domain)
        self.certbot.obtain_certificate(domain, email)
        self.certbot.install_to_nginx(domain)
        self.harden(domain)

        try:
            self.certbot.setup_auto_renewal()
        except CommandError as e:
            self.printer.warn(f"Failed to setup auto-renewal: {e.message}")

        self.printer.ok(f"SSL enabled for {domain}")
        self.printer.info(f"Your site is now available at https://{domain}")

    def harden(self, domain: str, webroot: str | None = None) -> MutationResult:
        """Fix the SSL block's docroot and add stapling/HSTS, then reload.

        `webroot` defaults to the settings docroot. A hardened file that
        fails `nginx -t` is rolled back and only the certbot-installed
        configuration is reloaded.
        """
        webroot = webroot or self.settings.docroot(domain)
        mutation = self.transaction.mutate(
            domain,
            [
                lambda lines: self.fixer.apply(lines, webroot),
                self.enhancer.apply,
            ],
        )

        fixed, enhanced = mutation.results
        if fixed.applied:
            self.printer.fix(f"SSL docroot set to {webroot}")
        else:
            self.printer.verify("SSL docroot already correct")
        if enhanced.applied:
            self.printer.ok("SSL configuration enhanced (OCSP stapling, HSTS)")
        elif enhanced.existed:
            self.printer.verify("SSL configuration already enhanced")
        else:
            self.printer.warn("No SSL server block to enhance")

        if not mutation.written:
            self.nginx.test_and_reload()
            return mutation

        try:
            self.transaction.commit(mutation)
        except ValidationFailedError as e:
            self.printer.warn(f"Failed to harden SSL config: {e.message}")
            self.nginx.test_and_reload()
        return mutation

    def verify_dns(self, domain: str) -> None:
        """Compare the server's public IP with the domain's A record.

        Raises:
            SVPError: The operator chose to skip SSL or abort, or DNS is
                wrong and there is nobody to ask.
        """
        self.printer.section(f"DNS Verification for {domain}")
        check = self.certbot.check_dns(domain)

        if not check.server_ip:
            self.printer.warn("Could not determine server's public IP")
            self.printer.warn("Skipping DNS verification")
            return

        if check.matches:
            self.printer.ok(f"DNS correctly points to server (IP: {check.server_ip})")
            return

        if not check.domain_ip:
            self.printer.warn(f"Could not resolve DNS for {domain}")
            self.printer.warn("Domain may not be configured yet")
            self.printer.info(f"Server IP: {check.server_ip}")
        else:
            self.printer.warn("DNS mismatch detected!")
            self.printer.info(f"  Server IP:  {check.server_ip}")
            self.printer.info(f"  Domain IP:  {check.domain_ip}")
            self.printer.info("Let's Encrypt requires the domain to point to this server.")
        self.printer.info("Please update your DNS records:")
        self.printer.info(f"  A record: {domain} -> {check.server_ip}")
        self.printer.info("DNS propagation can take 5-30 minutes.")

        self._dns_menu(domain)

    def _dns_menu(self, domain: str) -> None:
        while True:
            self.printer.info("What would you like to do?")
            self.printer.info("  1) Check DNS again (after updating records)")
            self.printer.info("  2) Continue without HTTPS (HTTP only)")
            self.printer.info("  3) Abort setup")
            choice = self._ask("Choice [1/2/3]").strip()

            if choice == "1":
                self.printer.log("Checking DNS again...")
                check = self.certbot.check_dns(domain)
                if not check.server_ip:
                    self.printer.warn("Could not determine server's public IP")
                elif not check.domain_ip:
                    self.printer.warn(f"Could not resolve DNS for {domain}")
                elif check.matches:
                    self.printer.ok(f"DNS now correctly points to server (IP: {check.server_ip})")
                    return
                else:
                    self.printer.warn(f"DNS still points to {check.domain_ip} (expected {check.server_ip})")
            elif choice == "2":
                self.printer.warn("Continuing without HTTPS - site will be HTTP only")
                raise SVPError("skipping SSL: DNS not configured")
            elif choice == "3":
                raise SVPError("setup aborted by user")
            else:
                self.printer.info("Invalid choice. Please enter 1, 2, or 3.")

    def disable(self, domain: str) -> MutationResult | None:
        """Strip HTTPS server blocks. Certificate files stay on disk.

        Raises:
            MalformedConfigError: Removing SSL would leave no server
                block serving the site over HTTP. The file is unchanged.
        """
        self.printer.section("Disabling SSL")

        if not self.certbot.has_certificate(domain):
            self.printer.warn(f"No SSL certificate found for {domain}")
            return None

        self.printer.log("Removing SSL configuration from nginx...")
        mutation = self.transaction.mutate(domain, [self.stripper.apply])
        (stripped,) = mutation.results
        if not stripped.applied and stripped.existed and not mutation.written:
            raise MalformedConfigError(
                f"cannot disable SSL for {domain}: {stripped.detail}",
                output="add a `listen 80;` server block with the site root, then retry",
            )
        self.transaction.commit(mutation)

        if mutation.applied:
            self.printer.ok(f"SSL disabled for {domain}")
        else:
            self.printer.verify("No SSL server block found in nginx configuration")

        self.printer.warn(f"Certificate files remain in {self.settings.letsencrypt_live}/{domain}")
        self.printer.log(f"To re-enable SSL, run: svp ssl {domain} enable")
        if mutation.applied:
            self.printer.info(f"Your site is now available at http://{domain}")
        return mutation

    def renew(self, domain: str) -> CertificateInfo | None:
        self.printer.section("Renewing SSL Certificate")
        self.certbot.renew(domain)
        self.nginx.test_and_reload()
        self.printer.ok(f"SSL certificate renewed for {domain}")
        return self.check(domain)

    def check(self, domain: str) -> CertificateInfo | None:
        """Print certificate details; None when there is no certificate."""
        self.printer.section("SSL Certificate Status")

        if not self.certbot.has_certificate(domain):
            self.printer.warn(f"No SSL certificate found for {domain}")
            self.printer.info(f"To enable SSL, run: svp ssl {domain} enable --le-email your@email.com")
            return None

        info = self.certbot.certificate_info(domain)
        self.printer.ok(f"SSL certificate exists for {domain}")
        self.printer.log("Certificate details:")
        if info.expiry:
            self.printer.info(f"  Expiry: {info.expiry}")
        if info.days_left is not None:
            self.printer.info(f"  Days left: {info.days_left}")
        if info.subject:
            self.printer.info(f"  Subject: {info.subject}")
        if info.issuer:
            self.printer.info(f"  Issuer: {info.issuer}")
        if info.certbot_output:
            self.printer.panel(info.certbot_output, "Certbot certificate information")
        return info

    def _ask(self, question: str) -> str:
        if self.prompt is None:
            raise SVPError(f"input required but not interactive: {question}")
        return self.prompt(question)
