"""Tests for the vhost brace-depth scanner."""

from svp.parser.block_scanner import ConfigBlockScanner, has_ssl_listener


class TestConfigBlockScanner:
    """Test line classification and server block detection."""

    def test_finds_http_and_https_blocks(self, https_lines):
        """Both server blocks should be found with their ports."""
        scan = ConfigBlockScanner().analyze(https_lines)

        assert len(scan.blocks) == 2
        assert scan.blocks[0].ports == [80]
        assert scan.blocks[1].ports == [443]
        assert scan.ssl_blocks == [scan.blocks[1]]
        assert scan.http_blocks == [scan.blocks[0]]
        assert scan.balanced

    def test_block_ranges_include_braces(self, https_lines):
        """start is the opener, end the matching closing brace."""
        scan = ConfigBlockScanner().analyze(https_lines)
        http, https = scan.blocks

        assert (http.start, http.end) == (0, 9)
        assert (https.start, https.end) == (11, 24)
        assert https_lines[https.start] == "server {"
        assert https_lines[https.end] == "}"
        assert https.line_count == 14

    def test_collects_server_names(self, https_lines):
        scan = ConfigBlockScanner().analyze(https_lines)

        assert scan.blocks[0].server_names == ["example.com"]
        assert scan.blocks[1].server_names == ["example.com"]

    def test_depth_of_openers_and_bodies(self, http_lines):
        """Openers report body depth, closers the depth they close."""
        infos = ConfigBlockScanner().scan(http_lines)

        assert infos[0].depth == 1  # server {
        assert infos[3].depth == 1  # server_name
        assert infos[7].depth == 2  # location / {
        assert infos[8].depth == 2  # try_files
        assert infos[9].depth == 2  # } of location
        assert infos[10].depth == 1  # } of server
        assert infos[11].depth == 0  # trailing empty line

    def test_in_server_body_only_at_depth_one(self, http_lines):
        infos = ConfigBlockScanner().scan(http_lines)

        assert infos[3].in_server_body
        assert not infos[8].in_server_body
        assert not infos[11].in_server_body
        assert infos[11].server is None

    def test_stack_tracks_enclosing_openers(self, http_lines):
        infos = ConfigBlockScanner().scan(http_lines)

        assert infos[8].stack == ("server {", "location / {")
        assert infos[7].opens_block_with == "location / {"
        assert infos[11].stack == ()

    def test_block_for_line(self, https_lines):
        scan = ConfigBlockScanner().analyze(https_lines)

        assert scan.block_for(19) is scan.blocks[1]
        assert scan.block_for(10) is None

    def test_collects_depth_one_roots(self, https_lines):
        """Only `root` directly inside the block marks it as serving files."""
        nested = ["server {", "    location / {", "        root /srv;", "    }", "}"]
        scan = ConfigBlockScanner().analyze(https_lines + nested)

        assert scan.blocks[0].root_lines == [4]
        assert scan.blocks[1].root_lines == [19]
        assert scan.blocks[0].serves_files
        assert not scan.blocks[2].serves_files

    def test_listen_port(self):
        scanner = ConfigBlockScanner()

        assert scanner.listen_port("listen [::]:443 ssl ipv6only=on; # managed by Certbot") == 443
        assert scanner.listen_port("listen 4430;") == 4430
        assert scanner.listen_port("server_name example.com;") is None

    def test_listen_address_forms(self):
        """Ports are parsed from address:port, IPv6 and bare forms."""
        lines = [
            "server {",
            "    listen 127.0.0.1:8080;",
            "    listen [::]:443 ssl http2;",
            "    listen 80 default_server;",
            "    listen localhost;",
            "    listen unix:/run/nginx.sock;",
            "}",
        ]
        block = ConfigBlockScanner().analyze(lines).blocks[0]

        assert block.ports == [8080, 443, 80]
        assert block.listen_lines == [1, 2, 3, 4]
        assert block.is_ssl
        assert not block.ssl_only

    def test_unclosed_block_is_unbalanced(self):
        scan = ConfigBlockScanner().analyze(["server {", "    listen 80;"])

        assert not scan.balanced
        assert not scan.blocks[0].closed
        assert scan.blocks[0].contains(5)

    def test_extra_closing_brace_is_unbalanced(self):
        scan = ConfigBlockScanner().analyze(["server {", "}", "}"])

        assert not scan.balanced
        assert all(info.depth >= 0 for info in scan.lines)

    def test_nested_listen_is_not_collected(self):
        """Only directives directly inside the server block count."""
        lines = [
            "server {",
            "    listen 80;",
            "    location / {",
            "        listen 443;",
            "    }",
            "}",
        ]
        block = ConfigBlockScanner().analyze(lines).blocks[0]

        assert block.ports == [80]

    def test_one_line_block_keeps_depth(self):
        lines = [
            "server {",
            "    location = /favicon.ico { access_log off; }",
            "    server_name example.com;",
            "}",
        ]
        infos = ConfigBlockScanner().scan(lines)

        assert infos[1].depth == 1
        assert infos[2].in_server_body

    def test_non_server_blocks_are_not_server_blocks(self):
        lines = ["upstream php {", "    server unix:/run/php.sock;", "}"]
        scan = ConfigBlockScanner().analyze(lines)

        assert scan.blocks == []
        assert scan.balanced


def test_has_ssl_listener(http_lines, https_lines, certbot_lines):
    assert has_ssl_listener(https_lines)
    assert has_ssl_listener(certbot_lines)
    assert not has_ssl_listener(http_lines)
    assert has_ssl_listener(["server {", "    listen [::]:443 ssl;", "}"])


def test_has_ssl_listener_compares_ports():
    assert not has_ssl_listener(["server {", "    listen 4430;", "    listen 127.0.0.1:14430;", "}"])
