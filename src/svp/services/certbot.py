"""Certbot Service - Let's Encrypt certificates for nginx vhosts.

Certificates are obtained in two phases:
1. `certbot certonly` obtains the certificate without touching nginx,
   so a failed issuance (rate limit, DNS) leaves the HTTP site working.
2. `certbot install` wires the certificate into the vhost and adds the
   HTTP to HTTPS redirect.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from datetime import datetime, timezone

from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.errors import CommandError
from svp.output import StatusPrinter
from svp.system.packages import PackageManager
from svp.system.services import ServiceManager

CERTBOT_PACKAGES = ["certbot", "python3-certbot-nginx"]

PUBLIC_IP_COMMANDS = [
    "wget -qO- https://ipinfo.io/ip",
    "wget -qO- https://api.ipify.org",
    "wget -qO- https://icanhazip.com",
]

# resolver, command template (domain is shell-quoted)
DNS_LOOKUP_COMMANDS = [
    ("dig", "dig +short {domain} | grep -E '^[0-9.]+$' | head -n1"),
    ("nslookup", "nslookup {domain} | grep 'Address:' | tail -n1 | awk '{{print $2}}'"),
    ("host", "host {domain} | grep 'has address' | awk '{{print $4}}' | head -n1"),
]

IPV4_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


@dataclass
class CertificateInfo:
    """Certificate details as reported by openssl and certbot."""

    domain: str
    path: str
    expiry: str = ""
    subject: str = ""
    issuer: str = ""
    days_left: int | None = None
    certbot_output: str = ""


@dataclass
class DNSCheck:
    """Outcome of comparing the server IP with the domain's A record."""

    server_ip: str | None = None
    domain_ip: str | None = None

    @property
    def matches(self) -> bool:
        return bool(self.server_ip) and self.server_ip == self.domain_ip


class CertbotService:
    """Certificate acquisition and renewal through certbot."""

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        printer: StatusPrinter | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.packages = PackageManager(connector)
        self.services = ServiceManager(connector, self.printer)

    def cert_path(self, domain: str) -> str:
        return self.settings.cert_path(domain)

    def has_certificate(self, domain: str) -> bool:
        return self.connector.file_exists(self.cert_path(domain))

    def install(self, verify_only: bool = False) -> None:
        """Install certbot and its nginx plugin."""
        if not self.packages.missing(CERTBOT_PACKAGES):
            self.printer.verify("Certbot already installed")
            return

        if verify_only:
            self.printer.fail("Certbot not installed")
            raise CommandError("certbot not installed")

        self.printer.log("Installing Certbot...")
        self.packages.install(CERTBOT_PACKAGES)
        self.printer.ok("Certbot installed")

    def obtain_certificate(self, domain: str, email: str) -> None:
        """Phase 1: obtain a certificate without modifying nginx.

        Raises:
            CommandError: certbot failed or produced no certificate.
        """
        cert_path = self.cert_path(domain)
        if self.has_certificate(domain):
            self.printer.verify(f"SSL certificate already exists for {domain}")
            return

        self.printer.log(f"Obtaining SSL certificate for {domain}")
        result = self.connector.run(
            f"certbot certonly --nginx -d {shlex.quote(domain)} --non-interactive "
            f"--agree-tos --email {shlex.quote(email)} --no-eff-email"
        )
        if not result.success:
            raise CommandError.from_result("failed to obtain certificate", result)

        if not self.has_certificate(domain):
            raise CommandError(f"certificate file not found after obtainment: {cert_path}")

        self.printer.ok(f"SSL certificate obtained for {domain}")

    def install_to_nginx(self, domain: str) -> None:
        """Phase 2: configure nginx with an existing certificate.

        `--redirect` makes certbot add the HTTP to HTTPS redirect block.
        """
        cert_path = self.cert_path(domain)
        if not self.has_certificate(domain):
            raise CommandError(f"certificate not found: {cert_path}")

        self.printer.log(f"Configuring nginx with SSL for {domain}...")
        quoted = shlex.quote(domain)
        result = self.connector.run(
            f"certbot install --nginx -d {quoted} --cert-name {quoted} --non-interactive --redirect"
        )
        if not result.success:
            raise CommandError.from_result("failed to configure nginx SSL", result)

        self.printer.ok(f"Nginx configured with SSL for {domain}")

    def renew(self, domain: str) -> None:
        """Force renewal of one certificate."""
        if not self.has_certificate(domain):
            raise CommandError(f"no SSL certificate found for {domain}")

        self.printer.log(f"Renewing SSL certificate for {domain}...")
        result = self.connector.run(
            f"certbot renew --cert-name {shlex.quote(domain)} --force-renewal --nginx"
        )
        if not result.success:
            raise CommandError.from_result("failed to renew certificate", result)

    def setup_auto_renewal(self, verify_only: bool = False) -> None:
        """Make sure certbot.timer is enabled and active."""
        if self.connector.file_exists("/lib/systemd/system/certbot.timer"):
            self.services.ensure_running("certbot.timer", verify_only)
            self.printer.verify("Certbot auto-renewal configured")
            return

        if verify_only:
            self.printer.fail("Certbot auto-renewal not configured")
            raise CommandError("certbot auto-renewal not configured")

        self.printer.log("Setting up auto-renewal...")
        self.services.enable("certbot.timer")
        self.services.start("certbot.timer")
        self.printer.ok("Certbot auto-renewal configured")

    def certificate_info(self, domain: str) -> CertificateInfo:
        """Collect expiry, subject and issuer for a domain's certificate."""
        path = self.cert_path(domain)
        info = CertificateInfo(domain=domain, path=path)
        quoted = shlex.quote(path)

        for field_name, flag in (("expiry", "-enddate"), ("subject", "-subject"), ("issuer", "-issuer")):
            result = self.connector.run(f"openssl x509 -in {quoted} -noout {flag}")
            if result.success:
                setattr(info, field_name, result.stdout.strip())

        if info.expiry:
            end = self._parse_openssl_enddate(info.expiry.split("=", 1)[-1].strip())
            if end:
                info.days_left = max(0, int((end - datetime.now(timezone.utc)).total_seconds() // 86400))

        result = self.connector.run(f"certbot certificates --cert-name {shlex.quote(domain)}")
        if result.success:
            info.certbot_output = result.stdout.strip()

        return info

    def _parse_openssl_enddate(self, value: str) -> datetime | None:
        # OpenSSL format typically: "May 10 12:34:56 2026 GMT"
        for fmt in ("%b %d %H:%M:%S %Y %Z", "%b  %d %H:%M:%S %Y %Z"):
            try:
                parsed = datetime.strptime(value, fmt)
                return parsed.replace(tzinfo=timezone.utc)
            except ValueError:
                continue
        return None

    # =========================================================================
    # DNS VERIFICATION
    # =========================================================================

    def public_ip(self) -> str | None:
        """Ask a few public echo services for this server's IP."""
        for command in PUBLIC_IP_COMMANDS:
            result = self.connector.run(command, timeout=15)
            ip = result.stdout.strip()
            if result.success and ip:
                return ip
        return None

    def domain_ip(self, domain: str) -> str | None:
        """Resolve a domain's A record with whichever resolver tool exists."""
        quoted = shlex.quote(domain)
        for tool, template in DNS_LOOKUP_COMMANDS:
            if not self.connector.run(f"command -v {tool}").success:
                continue
            result = self.connector.run(template.format(domain=quoted), timeout=15)
            ip = result.stdout.strip()
            if result.success and IPV4_RE.match(ip):
                return ip
        return None

    def check_dns(self, domain: str) -> DNSCheck:
        return DNSCheck(server_ip=self.public_ip(), domain_ip=self.domain_ip(domain))
