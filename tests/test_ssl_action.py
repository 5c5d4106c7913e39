"""Tests for SSLAction: enable, disable, renew and check."""

import os
from unittest.mock import MagicMock

import pytest

from svp.actions.ssl import SSLAction
from svp.connector.local import LocalConnector
from svp.connector.ssh import CommandResult
from svp.editor.ssl import HSTS_HEADER
from svp.errors import CommandError, MalformedConfigError, SVPError, ValidationFailedError
from svp.services.certbot import CertbotService, CertificateInfo, DNSCheck
from svp.services.nginx import NginxService

DOMAIN = "example.com"
EMAIL = "admin@example.com"
MATCH = DNSCheck(server_ip="203.0.113.7", domain_ip="203.0.113.7")
MISMATCH = DNSCheck(server_ip="203.0.113.7", domain_ip="198.51.100.1")


@pytest.fixture
def nginx():
    service = MagicMock(spec=NginxService)
    service.test_config.return_value = CommandResult(command="nginx -t", stdout="", stderr="", exit_code=0)
    return service


@pytest.fixture
def certbot():
    service = MagicMock(spec=CertbotService)
    service.has_certificate.return_value = False
    service.check_dns.return_value = MATCH
    return service


@pytest.fixture
def vhost(settings, https_vhost):
    """Vhost as certbot leaves it after `certbot install`."""
    os.makedirs(settings.sites_available)
    path = settings.vhost_path(DOMAIN)
    with open(path, "w") as f:
        f.write(https_vhost)
    return path


def make_action(settings, printer, nginx, certbot, prompt=None):
    return SSLAction(LocalConnector(), settings, printer, nginx=nginx, certbot=certbot, prompt=prompt)


def read(path):
    with open(path) as f:
        return f.read()


class TestEnable:
    def test_new_certificate_is_obtained_and_hardened(self, settings, printer, nginx, certbot, vhost):
        make_action(settings, printer, nginx, certbot).enable(DOMAIN, EMAIL)

        certbot.obtain_certificate.assert_called_once_with(DOMAIN, EMAIL)
        certbot.install_to_nginx.assert_called_once_with(DOMAIN)
        content = read(vhost)
        assert f"    root {settings.docroot(DOMAIN)};" in content
        assert "    root /old/path;" not in content
        assert content.count(HSTS_HEADER) == 1
        nginx.reload.assert_called_once()
        certbot.setup_auto_renewal.assert_called_once()

    def test_existing_certificate_is_reinstalled_and_hardened(self, settings, printer, nginx, certbot, vhost):
        certbot.has_certificate.return_value = True

        make_action(settings, printer, nginx, certbot).enable(DOMAIN)

        certbot.obtain_certificate.assert_not_called()
        certbot.install_to_nginx.assert_called_once_with(DOMAIN)
        content = read(vhost)
        assert f"    root {settings.docroot(DOMAIN)};" in content
        assert content.count(HSTS_HEADER) == 1
        nginx.test_config.assert_called_once()
        nginx.reload.assert_called_once()

    def test_email_is_required(self, settings, printer, nginx, certbot, vhost):
        with pytest.raises(SVPError, match="email address is required"):
            make_action(settings, printer, nginx, certbot).enable(DOMAIN)

    def test_email_is_prompted(self, settings, printer, nginx, certbot, vhost):
        prompt = MagicMock(return_value="ops@example.com")

        make_action(settings, printer, nginx, certbot, prompt).enable(DOMAIN)

        assert "email" in prompt.call_args.args[0]
        certbot.obtain_certificate.assert_called_once_with(DOMAIN, "ops@example.com")

    def test_hardening_rolled_back_when_invalid(self, settings, printer, nginx, certbot, vhost, https_vhost):
        nginx.test_config.return_value = CommandResult(
            command="nginx -t", stdout="", stderr='nginx: [emerg] "ssl_stapling" ignored', exit_code=1
        )

        make_action(settings, printer, nginx, certbot).enable(DOMAIN, EMAIL)

        assert read(vhost) == https_vhost
        nginx.test_and_reload.assert_called_once()
        assert "Failed to harden" in printer.console.export_text()

    def test_auto_renewal_failure_is_a_warning(self, settings, printer, nginx, certbot, vhost):
        certbot.setup_auto_renewal.side_effect = CommandError("failed to enable certbot.timer")

        make_action(settings, printer, nginx, certbot).enable(DOMAIN, EMAIL)

        assert "auto-renewal" in printer.console.export_text()


class TestDNSVerification:
    def test_abort(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.return_value = MISMATCH
        prompt = MagicMock(return_value="3")

        with pytest.raises(SVPError, match="aborted"):
            make_action(settings, printer, nginx, certbot, prompt).enable(DOMAIN, EMAIL)

        certbot.obtain_certificate.assert_not_called()

    def test_continue_without_https(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.return_value = MISMATCH

        with pytest.raises(SVPError, match="skipping SSL"):
            make_action(settings, printer, nginx, certbot, MagicMock(return_value="2")).enable(DOMAIN, EMAIL)

    def test_recheck_until_dns_matches(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.side_effect = [MISMATCH, MISMATCH, MATCH]
        prompt = MagicMock(side_effect=["1", "1"])

        make_action(settings, printer, nginx, certbot, prompt).enable(DOMAIN, EMAIL)

        assert certbot.check_dns.call_count == 3
        certbot.obtain_certificate.assert_called_once()

    def test_invalid_choice_asks_again(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.return_value = DNSCheck(server_ip="203.0.113.7", domain_ip=None)
        prompt = MagicMock(side_effect=["9", "3"])

        with pytest.raises(SVPError, match="aborted"):
            make_action(settings, printer, nginx, certbot, prompt).enable(DOMAIN, EMAIL)

        assert prompt.call_count == 2
        assert "Invalid choice" in printer.console.export_text()

    def test_mismatch_without_prompt_fails(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.return_value = MISMATCH

        with pytest.raises(SVPError, match="not interactive"):
            make_action(settings, printer, nginx, certbot).enable(DOMAIN, EMAIL)

    def test_unknown_server_ip_skips_check(self, settings, printer, nginx, certbot, vhost):
        certbot.check_dns.return_value = DNSCheck()

        make_action(settings, printer, nginx, certbot).enable(DOMAIN, EMAIL)

        certbot.obtain_certificate.assert_called_once()


class TestDisable:
    def test_strips_https_block(self, settings, printer, nginx, certbot, vhost, https_lines):
        certbot.has_certificate.return_value = True

        mutation = make_action(settings, printer, nginx, certbot).disable(DOMAIN)

        assert mutation.applied
        assert read(vhost) == "\n".join(https_lines[:11] + https_lines[25:])
        nginx.reload.assert_called_once()
        assert "now available at http://example.com" in printer.console.export_text()

    def test_certbot_redirect_layout_keeps_site(self, settings, printer, nginx, certbot, certbot_vhost):
        certbot.has_certificate.return_value = True
        os.makedirs(settings.sites_available)
        path = settings.vhost_path(DOMAIN)
        with open(path, "w") as f:
            f.write(certbot_vhost)

        make_action(settings, printer, nginx, certbot).disable(DOMAIN)

        content = read(path)
        assert "    listen 80;" in content
        assert "    root /var/www/example.com/web;" in content
        assert "443" not in content
        assert "return 301" not in content
        nginx.reload.assert_called_once()

    def test_refuses_to_leave_nothing_serving_http(self, settings, printer, nginx, certbot):
        certbot.has_certificate.return_value = True
        os.makedirs(settings.sites_available)
        path = settings.vhost_path(DOMAIN)
        original = "server {\n    listen 443 ssl;\n    server_name example.com;\n    return 444;\n}\n"
        with open(path, "w") as f:
            f.write(original)

        with pytest.raises(MalformedConfigError, match="cannot disable SSL"):
            make_action(settings, printer, nginx, certbot).disable(DOMAIN)

        assert read(path) == original
        nginx.reload.assert_not_called()
        assert "now available at http" not in printer.console.export_text()

    def test_http_only_vhost_does_not_claim_change(self, settings, printer, nginx, certbot, http_vhost):
        certbot.has_certificate.return_value = True
        os.makedirs(settings.sites_available)
        with open(settings.vhost_path(DOMAIN), "w") as f:
            f.write(http_vhost)

        mutation = make_action(settings, printer, nginx, certbot).disable(DOMAIN)

        assert not mutation.written
        text = printer.console.export_text()
        assert "No SSL server block found" in text
        assert "now available at http" not in text

    def test_without_certificate_does_nothing(self, settings, printer, nginx, certbot, vhost, https_vhost):
        assert make_action(settings, printer, nginx, certbot).disable(DOMAIN) is None
        assert read(vhost) == https_vhost
        nginx.reload.assert_not_called()


class TestRenewAndCheck:
    def test_renew_tests_config_before_reload(self, mock_connector, settings, printer, certbot):
        certbot.has_certificate.return_value = True
        certbot.certificate_info.return_value = CertificateInfo(
            domain=DOMAIN, path="/etc/letsencrypt/live/example.com/fullchain.pem", days_left=89
        )
        nginx = NginxService(mock_connector, settings, printer)
        action = SSLAction(mock_connector, settings, printer, nginx=nginx, certbot=certbot)

        info = action.renew(DOMAIN)

        certbot.renew.assert_called_once_with(DOMAIN)
        commands = [c.args[0] for c in mock_connector.run.call_args_list]
        assert commands == ["nginx -t", "systemctl reload nginx"]
        assert info.days_left == 89
        assert "Days left: 89" in printer.console.export_text()

    def test_renew_does_not_reload_invalid_config(self, mock_connector, settings, printer, certbot):
        mock_connector.run.return_value = CommandResult(
            command="nginx -t", stdout="", stderr="nginx: [emerg] bad", exit_code=1
        )
        nginx = NginxService(mock_connector, settings, printer)
        action = SSLAction(mock_connector, settings, printer, nginx=nginx, certbot=certbot)

        with pytest.raises(ValidationFailedError):
            action.renew(DOMAIN)

        commands = [c.args[0] for c in mock_connector.run.call_args_list]
        assert "systemctl reload nginx" not in commands

    def test_check_shows_certbot_output(self, settings, printer, nginx, certbot):
        certbot.has_certificate.return_value = True
        certbot.certificate_info.return_value = CertificateInfo(
            domain=DOMAIN,
            path="/etc/letsencrypt/live/example.com/fullchain.pem",
            expiry="notAfter=Jan 17 10:00:00 2027 GMT",
            certbot_output="Certificate Name: example.com",
        )

        make_action(settings, printer, nginx, certbot).check(DOMAIN)

        text = printer.console.export_text()
        assert "Expiry: notAfter=Jan 17 10:00:00 2027 GMT" in text
        assert "Certificate Name: example.com" in text

    def test_check_without_certificate(self, settings, printer, nginx, certbot):
        assert make_action(settings, printer, nginx, certbot).check(DOMAIN) is None
        certbot.certificate_info.assert_not_called()

    def test_run_installs_certbot_first(self, settings, printer, nginx, certbot):
        make_action(settings, printer, nginx, certbot).run(DOMAIN, "check")

        certbot.install.assert_called_once()

    def test_run_rejects_unknown_action(self, settings, printer, nginx, certbot):
        with pytest.raises(SVPError, match="invalid action"):
            make_action(settings, printer, nginx, certbot).run(DOMAIN, "rotate")
