"""SSL server-block editors.

- SSLBlockStripper: drops or converts the port 443 server block(s) to disable SSL
- SSLDocrootFixer: points the SSL block's `root` at the site webroot
- SSLEnhancer: injects OCSP stapling, resolver and HSTS directives

All three share ConfigBlockScanner for block boundaries and never
raise; they report through EditResult.applied instead.
"""

from svp.model.vhost import EditResult, ServerBlock
from svp.parser.block_scanner import ConfigBlockScanner, ScanResult, has_ssl_listener

HSTS_HEADER = "Strict-Transport-Security"
HSTS_VALUE = "max-age=63072000; includeSubDomains; preload"

ENHANCEMENT_LINES = [
    "",
    "# Enhanced SSL Security Settings",
    "ssl_stapling on;",
    "ssl_stapling_verify on;",
    "resolver 8.8.8.8 8.8.4.4 valid=300s;",
    "resolver_timeout 5s;",
    "",
    "# HSTS (HTTP Strict Transport Security)",
    f'add_header {HSTS_HEADER} "{HSTS_VALUE}" always;',
]

# Non-`ssl_` lines SSLEnhancer writes, matched exactly when stripping.
ENHANCEMENT_MARKERS = {
    line for line in ENHANCEMENT_LINES if line and "ssl_" not in line and HSTS_HEADER not in line
}


class SSLBlockStripper:
    """Remove HTTPS server blocks and stray SSL directives.

    Two layouts are handled:

    - The site is still served over HTTP by another block (a mixed
      80/443 block, or a port 80 block with its own `root`). Blocks
      listening only on 443 are removed whole, opener and closing brace
      included.
    - `certbot install --redirect` moved the site into a 443-only block
      and left a port 80 block that only redirects. The 443-only block
      that carries a `root` is turned back into a port 80 block and the
      redirect-only block is removed.

    When neither applies the input is returned unchanged with
    `existed=True, applied=False`: stripping would leave nothing
    serving the site.

    In every kept block, 443 listeners are dropped (or converted) along
    with `ssl_*`, HSTS and `options-ssl-nginx` lines and the comments
    SSLEnhancer writes.
    """

    REDIRECT_MARKER = "return 301 https://"

    def __init__(self, scanner: ConfigBlockScanner | None = None) -> None:
        self.scanner = scanner or ConfigBlockScanner()

    def apply(self, lines: list[str]) -> EditResult:
        scan = self.scanner.analyze(lines)
        ssl_only = [b for b in scan.blocks if b.ssl_only and b.closed]
        http_sites = [b for b in scan.blocks if b.serves_files and not b.ssl_only]

        converted: list[ServerBlock] = []
        redirects: list[ServerBlock] = []
        if http_sites:
            dropped = ssl_only
        else:
            converted = [b for b in ssl_only if b.serves_files]
            dropped = [b for b in ssl_only if not b.serves_files]
            if not converted and ssl_only:
                return EditResult(
                    lines=list(lines),
                    applied=False,
                    existed=True,
                    detail="no server block would be left to serve the site over HTTP",
                )
            if converted:
                redirects = [b for b in scan.http_blocks if b.closed and self._redirect_only(scan, b)]

        converted_index = {b.index for b in converted}
        redirect_starts = {b.start for b in redirects}
        removed_blocks = dropped + redirects

        result: list[str] = []
        removed = 0
        listeners = 0
        for info in scan.lines:
            if info.number in redirect_starts and result and not result[-1].strip():
                result.pop()
            if any(block.contains(info.number) for block in removed_blocks):
                removed += 1
                continue
            stripped = info.stripped
            block = scan.block_for(info.number)
            if block is not None and info.in_server_body and self.scanner.listen_port(stripped) == 443:
                listeners += 1
                if block.index in converted_index:
                    result.append(self._http_listener(info.indent, stripped))
                else:
                    removed += 1
                continue
            if self._is_ssl_line(stripped):
                if stripped.startswith("#") and result and not result[-1].strip():
                    result.pop()
                removed += 1
                continue
            result.append(info.text)

        return EditResult(
            lines=result,
            applied=bool(removed_blocks or converted) or listeners > 0,
            existed=removed > 0 or listeners > 0,
            detail=(
                f"removed {len(removed_blocks)} server block(s), converted {len(converted)} to HTTP, "
                f"{removed} line(s)"
            ),
        )

    def _redirect_only(self, scan: ScanResult, block: ServerBlock) -> bool:
        """Port 80 block without a root whose job is the HTTPS redirect."""
        if block.serves_files:
            return False
        return any(
            self.REDIRECT_MARKER in info.text
            for info in scan.lines[block.start : block.end + 1]
        )

    def _http_listener(self, indent: str, stripped: str) -> str:
        if stripped.split()[1].startswith("["):
            return f"{indent}listen [::]:80;"
        return f"{indent}listen 80;"

    def _is_ssl_line(self, stripped: str) -> bool:
        return (
            "ssl_" in stripped
            or HSTS_HEADER in stripped
            or "options-ssl-nginx" in stripped
            or stripped in ENHANCEMENT_MARKERS
        )


class SSLDocrootFixer:
    """Rewrite `root` inside the SSL server block(s) to the site webroot.

    Must run after certbot has installed the certificate: without a 443
    listener there is nothing to fix and the input is returned as-is.
    """

    def __init__(self, scanner: ConfigBlockScanner | None = None) -> None:
        self.scanner = scanner or ConfigBlockScanner()

    def apply(self, lines: list[str], webroot: str) -> EditResult:
        if not has_ssl_listener(lines):
            return EditResult(lines=list(lines), applied=False, detail="no 443 listener")

        scan = self.scanner.analyze(lines)
        ssl_blocks = scan.ssl_blocks

        result: list[str] = []
        fixed = 0
        for info in scan.lines:
            stripped = info.stripped
            in_ssl = any(block.contains(info.number) for block in ssl_blocks)
            if in_ssl and stripped.startswith("root "):
                current = stripped[len("root "):].split(";", 1)[0].strip()
                if current != webroot:
                    result.append(f"{info.indent}root {webroot};")
                    fixed += 1
                    continue
            result.append(info.text)

        return EditResult(lines=result, applied=fixed > 0, detail=f"fixed {fixed} root directive(s)")


class SSLEnhancer:
    """Inject hardened TLS settings after `ssl_certificate_key`.

    Skipped when the HSTS header is already present or when no 443
    listener exists. The block is added after every
    `ssl_certificate_key ...;` line sitting directly inside a server
    block, indented like that line.
    """

    def __init__(self, scanner: ConfigBlockScanner | None = None) -> None:
        self.scanner = scanner or ConfigBlockScanner()

    def apply(self, lines: list[str]) -> EditResult:
        if any(HSTS_HEADER in line for line in lines):
            return EditResult(lines=list(lines), applied=False, existed=True, detail="already enhanced")
        if not has_ssl_listener(lines):
            return EditResult(lines=list(lines), applied=False, detail="no 443 listener")

        result: list[str] = []
        inserted = 0
        for info in self.scanner.scan(lines):
            result.append(info.text)
            stripped = info.stripped
            if info.in_server_body and stripped.startswith("ssl_certificate_key") and ";" in stripped:
                result.extend(self.enhancement(info.indent))
                inserted += 1

        return EditResult(lines=result, applied=inserted > 0, detail=f"inserted {inserted} block(s)")

    def enhancement(self, indent: str) -> list[str]:
        return [f"{indent}{line}" if line else "" for line in ENHANCEMENT_LINES]
