"""Tests for PHPService: packages and per-site FPM pools."""

import pytest

from svp.connector.ssh import CommandResult
from svp.errors import CommandError
from svp.services.nginx import NginxService
from svp.services.php import PHPService, php_packages

DOMAIN = "example.com"


def result(exit_code=0, stdout="", stderr=""):
    return CommandResult(command="test", stdout=stdout, stderr=stderr, exit_code=exit_code)


def commands(mock_connector):
    return [c.args[0] for c in mock_connector.run.call_args_list]


@pytest.fixture
def php(mock_connector, settings, printer):
    return PHPService(mock_connector, settings, printer)


class TestInstall:
    def test_missing_packages_are_installed(self, php, mock_connector):
        php.install("8.3")

        ran = commands(mock_connector)
        assert "DEBIAN_FRONTEND=noninteractive apt-get update -y" in ran
        install = next(c for c in ran if "apt-get install" in c)
        assert "--no-install-recommends" in install
        assert "php8.3-fpm" in install
        assert "php8.3-opcache" in install
        assert ran[-2:] == ["systemctl is-enabled php8.3-fpm", "systemctl is-active php8.3-fpm"]

    def test_installed_version_is_only_verified(self, php, mock_connector, printer):
        mock_connector.run.side_effect = lambda command, **kwargs: result(
            stdout=f"ii  {command.split()[-1]}  8.3.6  amd64" if command.startswith("dpkg") else ""
        )

        php.install("8.3")

        assert not any("apt-get" in c for c in commands(mock_connector))
        assert "PHP 8.3 packages already installed" in printer.console.export_text()

    def test_verify_only_reports_missing(self, php, mock_connector):
        with pytest.raises(CommandError, match="missing PHP 8.3 packages"):
            php.install("8.3", verify_only=True)

        assert not any("apt-get" in c for c in commands(mock_connector))

    def test_package_list(self):
        packages = php_packages("8.4")

        assert packages[0] == "php8.4-fpm"
        assert "php8.4-mysql" in packages
        assert len(packages) == 13


class TestPools:
    def test_render_pool(self, php, settings):
        content = php.render_pool(DOMAIN, "8.3", settings.docroot(DOMAIN))

        assert "[example.com]" in content
        assert "listen = /run/php/php8.3-fpm-example.com.sock" in content
        assert "php_admin_value[error_log] = /var/log/php8.3-fpm-example.com-error.log" in content
        # open_basedir covers the project root, not just the docroot
        assert f"php_admin_value[open_basedir] = {settings.site_dir(DOMAIN)}:/tmp:/usr/share/php" in content

    def test_render_pool_with_custom_webroot(self, php):
        content = php.render_pool(DOMAIN, "8.3", "/srv/app/public")

        assert "php_admin_value[open_basedir] = /srv/app/public:/tmp:/usr/share/php" in content

    def test_pool_socket_matches_php_snippet(self, php, settings, mock_connector):
        """The vhost's `$pool` plus the snippet must resolve to the pool's socket."""
        snippet = NginxService(mock_connector, settings).render("php-fpm.conf.j2", php_version="8.3")
        socket = snippet.split("fastcgi_pass unix:", 1)[1].split(";", 1)[0].replace("$pool", DOMAIN)

        assert socket == php.socket_path(DOMAIN, "8.3")

    def test_create_pool_writes_and_restarts(self, php, mock_connector, settings):
        path = php.create_pool(DOMAIN, "8.3", settings.docroot(DOMAIN))

        assert path == f"{settings.php_etc_dir}/8.3/fpm/pool.d/example.com.conf"
        written_path, content = mock_connector.write_file.call_args.args
        assert written_path == path
        assert "[example.com]" in content
        assert commands(mock_connector) == [
            "systemctl restart php8.3-fpm",
            "test -S /run/php/php8.3-fpm-example.com.sock",
        ]

    def test_missing_socket_raises(self, php, mock_connector, settings):
        mock_connector.run.side_effect = [result(), result(1)]

        with pytest.raises(CommandError, match="socket was not created"):
            php.create_pool(DOMAIN, "8.3", settings.docroot(DOMAIN))

    def test_restart_failure_raises(self, php, mock_connector, settings):
        mock_connector.run.return_value = result(1, stderr="Job for php8.3-fpm.service failed")

        with pytest.raises(CommandError) as exc:
            php.create_pool(DOMAIN, "8.3", settings.docroot(DOMAIN))

        assert "php8.3-fpm.service failed" in exc.value.output

    def test_remove_pool_restarts_old_service(self, php, mock_connector, settings):
        assert php.remove_pool(DOMAIN, "8.2")

        mock_connector.remove_file.assert_called_once_with(settings.php_pool_path(DOMAIN, "8.2"))
        assert commands(mock_connector) == ["systemctl restart php8.2-fpm"]

    def test_remove_missing_pool(self, php, mock_connector):
        mock_connector.file_exists.return_value = False

        assert not php.remove_pool(DOMAIN, "8.2")
        mock_connector.remove_file.assert_not_called()

    def test_old_service_restart_failure_is_a_warning(self, php, mock_connector, printer):
        mock_connector.run.return_value = result(1, stderr="Unit php8.2-fpm.service not found.")

        assert php.remove_pool(DOMAIN, "8.2")
        assert "Failed to restart old PHP-FPM service" in printer.console.export_text()
