"""Basic auth directive editor.

Adds or removes `auth_basic` / `auth_basic_user_file` in every
top-level server block of a vhost.
"""

from svp.model.vhost import EditResult
from svp.parser.block_scanner import ConfigBlockScanner

AUTH_MARKER = "# Basic Authentication"
AUTH_REALM = "Restricted Access"


class AuthDirectiveEditor:
    """Idempotent basic-auth editor.

    Removal is file-wide: any line mentioning `auth_basic` goes, along
    with the marker comment this editor writes and the blank line in
    front of it. That assumes one site per vhost file; a file sharing
    several sites would lose auth on all of them.

    Insertion happens after the first `server_name ...;` line at depth 1
    of each server block, using that line's indentation:

        server_name example.com;

        # Basic Authentication
        auth_basic "Restricted Access";
        auth_basic_user_file /var/www/example.com/.htpasswd;
    """

    def __init__(self, scanner: ConfigBlockScanner | None = None) -> None:
        self.scanner = scanner or ConfigBlockScanner()

    def apply(self, lines: list[str], enable: bool, htpasswd_path: str = "") -> EditResult:
        """Enable or disable basic auth.

        Args:
            lines: Vhost lines.
            enable: Insert directives when True, only remove when False.
            htpasswd_path: Password file referenced by auth_basic_user_file.

        Returns:
            EditResult. `existed` reports whether auth directives were
            present before the edit. For enable, `applied` is False and
            the input is returned untouched when no server_name anchor
            exists inside a server block.
        """
        cleaned, existed = self.remove(lines)

        if not enable:
            return EditResult(lines=cleaned, applied=existed, existed=existed)

        result: list[str] = []
        anchored: set[int] = set()
        for info in self.scanner.scan(cleaned):
            result.append(info.text)
            if (
                info.in_server_body
                and info.server not in anchored
                and info.stripped.startswith("server_name")
                and info.stripped.endswith(";")
            ):
                anchored.add(info.server)
                result.extend(self.directives(info.indent, htpasswd_path))

        if not anchored:
            return EditResult(
                lines=list(lines),
                applied=False,
                existed=existed,
                detail="no server_name directive found inside a server block",
            )

        return EditResult(lines=result, applied=True, existed=existed)

    def remove(self, lines: list[str]) -> tuple[list[str], bool]:
        """Strip auth directives and the marker comment from all lines."""
        result: list[str] = []
        existed = False
        for line in lines:
            stripped = line.strip()
            if "auth_basic" in stripped:
                existed = True
                continue
            if stripped == AUTH_MARKER:
                if result and not result[-1].strip():
                    result.pop()
                continue
            result.append(line)
        return result, existed

    def directives(self, indent: str, htpasswd_path: str) -> list[str]:
        return [
            "",
            f"{indent}{AUTH_MARKER}",
            f'{indent}auth_basic "{AUTH_REALM}";',
            f"{indent}auth_basic_user_file {htpasswd_path};",
        ]

    def is_enabled(self, lines: list[str]) -> bool:
        """True if any line carries an auth_basic directive."""
        return any(line.strip().startswith("auth_basic") for line in lines)
