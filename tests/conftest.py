"""Pytest configuration and fixtures for svp tests."""

import pytest
from unittest.mock import MagicMock

from svp.config import ProvisionerSettings
from svp.connector.ssh import CommandResult, SSHConnector
from svp.output import StatusPrinter

from rich.console import Console


HTTP_VHOST = """server {
    listen 80;
    listen [::]:80;
    server_name example.com;
    root /var/www/example.com/web;
    index index.php index.html;

    location / {
        try_files $uri $uri/ /index.php?$query_string;
    }
}
"""

# HTTP block that still serves the site, plus a separate HTTPS block
# (hand-written split layout, or one left by an older tool).
HTTPS_VHOST = """server {
    listen 80;
    listen [::]:80;
    server_name example.com;
    root /var/www/example.com/web;

    location / {
        try_files $uri $uri/ =404;
    }
}

server {
    listen 443 ssl;
    listen [::]:443 ssl;
    server_name example.com;
    ssl_certificate /etc/letsencrypt/live/example.com/fullchain.pem;
    ssl_certificate_key /etc/letsencrypt/live/example.com/privkey.pem;
    include /etc/letsencrypt/options-ssl-nginx.conf;
    ssl_dhparam /etc/letsencrypt/ssl-dhparams.pem;
    root /old/path;

    location / {
        try_files $uri $uri/ =404;
    }
}
"""

# What `certbot install --redirect` makes of HTTP_VHOST: the site block
# now listens on 443 only and a new port 80 block just redirects.
CERTBOT_VHOST = """server {
    server_name example.com;
    root /var/www/example.com/web;
    index index.php index.html;

    location / {
        try_files $uri $uri/ /index.php?$query_string;
    }

    listen [::]:443 ssl ipv6only=on; # managed by Certbot
    listen 443 ssl; # managed by Certbot
    ssl_certificate /etc/letsencrypt/live/example.com/fullchain.pem; # managed by Certbot
    ssl_certificate_key /etc/letsencrypt/live/example.com/privkey.pem; # managed by Certbot
    include /etc/letsencrypt/options-ssl-nginx.conf; # managed by Certbot
    ssl_dhparam /etc/letsencrypt/ssl-dhparams.pem; # managed by Certbot

}
server {
    if ($host = example.com) {
        return 301 https://$host$request_uri;
    } # managed by Certbot


    listen 80;
    listen [::]:80;
    server_name example.com;
    return 404; # managed by Certbot


}
"""


@pytest.fixture
def http_lines():
    """Single HTTP server block, as a line list."""
    return HTTP_VHOST.split("\n")


@pytest.fixture
def https_lines():
    """HTTP and HTTPS server blocks, as a line list."""
    return HTTPS_VHOST.split("\n")


@pytest.fixture
def mock_connector():
    """Create a mock connector for testing."""
    connector = MagicMock(spec=SSHConnector)

    # Default behavior: commands succeed
    connector.run.return_value = CommandResult(
        command="test",
        stdout="",
        stderr="",
        exit_code=0,
    )
    connector.file_exists.return_value = True
    connector.dir_exists.return_value = True
    connector.write_file.return_value = True
    connector.remove_file.return_value = True
    connector.make_dirs.return_value = True
    connector.read_file.return_value = None

    return connector


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory."""
    return ProvisionerSettings(
        sites_available=str(tmp_path / "sites-available"),
        sites_enabled=str(tmp_path / "sites-enabled"),
        snippets_dir=str(tmp_path / "snippets"),
        webroot_base=str(tmp_path / "www"),
        letsencrypt_live=str(tmp_path / "live"),
        backup_dir=str(tmp_path / "backups"),
    )


@pytest.fixture
def printer():
    """Printer writing to throwaway in-memory consoles."""
    return StatusPrinter(
        console=Console(record=True, width=200),
        err_console=Console(record=True, width=200),
    )


@pytest.fixture
def http_vhost():
    """Single HTTP server block, as file text."""
    return HTTP_VHOST


@pytest.fixture
def https_vhost():
    """HTTP and HTTPS server blocks, as file text."""
    return HTTPS_VHOST


@pytest.fixture
def certbot_lines():
    """Site block moved to 443 plus certbot's redirect block, as a line list."""
    return CERTBOT_VHOST.split("\n")


@pytest.fixture
def certbot_vhost():
    """Site block moved to 443 plus certbot's redirect block, as file text."""
    return CERTBOT_VHOST
