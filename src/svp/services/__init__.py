"""Services package - External collaborators driven through a connector."""

from svp.services.certbot import CertbotService, CertificateInfo, DNSCheck
from svp.services.htpasswd import HtpasswdService
from svp.services.nginx import NginxService
from svp.services.php import PHPService

__all__ = ["CertbotService", "CertificateInfo", "DNSCheck", "HtpasswdService", "NginxService", "PHPService"]
