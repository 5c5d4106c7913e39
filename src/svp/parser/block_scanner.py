"""Config Block Scanner.

Classifies every line of a vhost file by brace nesting so editors can
scope their changes to the right block without a full nginx parser.

IMPORTANT DESIGN NOTES:
1. One running brace counter for the whole file. Editors never count
   braces themselves; they consume LineInfo / ServerBlock records.
2. Braces inside quoted strings or comments are counted like any other.
   Output is best-effort and `nginx -t` stays the real validator.
3. Only top-level `server {` openers start a ServerBlock.
"""

import re
from dataclasses import dataclass, field

from svp.model.vhost import LineInfo, ServerBlock


def has_ssl_listener(lines: list[str]) -> bool:
    """True when any server block listens on port 443."""
    return any(block.is_ssl for block in ConfigBlockScanner().server_blocks(lines))


@dataclass
class ScanResult:
    """Full scanner output for one file."""

    lines: list[LineInfo] = field(default_factory=list)
    blocks: list[ServerBlock] = field(default_factory=list)
    balanced: bool = True

    @property
    def ssl_blocks(self) -> list[ServerBlock]:
        return [b for b in self.blocks if b.is_ssl]

    @property
    def http_blocks(self) -> list[ServerBlock]:
        return [b for b in self.blocks if not b.is_ssl]

    def block_for(self, line_number: int) -> ServerBlock | None:
        """Return the server block a line belongs to, if any."""
        server = self.lines[line_number].server
        if server is None:
            return None
        return self.blocks[server]


class ConfigBlockScanner:
    """Brace-depth scanner for nginx vhost text.

    Depth rule: a line records max(depth before, depth after) its own
    braces. An opener therefore reports the depth of the body it opens
    and a closing brace reports the depth of the block it closes, so
    every line of `server { ... }` (including both brace lines) sits
    at depth >= 1 and directives directly inside it sit at depth 1.

    Example:
        >>> scanner = ConfigBlockScanner()
        >>> result = scanner.analyze(["server {", "    listen 80;", "}"])
        >>> result.blocks[0].ports
        [80]
    """

    SERVER_OPEN_RE = re.compile(r"^server\s*\{")
    LISTEN_RE = re.compile(r"^listen\s+([^\s;]+)")
    SERVER_NAME_RE = re.compile(r"^server_name\s+([^;]*);")
    ROOT_RE = re.compile(r"^root\s+[^;]+;")

    def scan(self, lines: list[str]) -> list[LineInfo]:
        """Classify each line by nesting context."""
        return self.analyze(lines).lines

    def server_blocks(self, lines: list[str]) -> list[ServerBlock]:
        """Return the top-level server blocks with ports and names."""
        return self.analyze(lines).blocks

    def analyze(self, lines: list[str]) -> ScanResult:
        """Walk the file once and collect line and block metadata."""
        result = ScanResult()
        depth = 0
        stack: list[str] = []
        current: ServerBlock | None = None

        for number, line in enumerate(lines):
            stripped = line.strip()
            net = stripped.count("{") - stripped.count("}")
            before = depth
            after = depth + net

            opener = None
            if net > 0:
                opener = stripped
                if before == 0 and current is None and self.SERVER_OPEN_RE.match(stripped):
                    current = ServerBlock(index=len(result.blocks), start=number)
                    result.blocks.append(current)
                stack.extend([stripped] * net)

            info = LineInfo(
                number=number,
                text=line,
                depth=max(before, after, 0),
                opens_block_with=opener,
                stack=tuple(stack),
                server=current.index if current else None,
            )
            result.lines.append(info)

            if current is not None and info.depth == 1 and opener is None:
                self._collect_directive(current, stripped, number)

            if net < 0:
                del stack[max(len(stack) + net, 0):]
                if after < 0:
                    result.balanced = False
                    after = 0
                if after == 0 and current is not None:
                    current.end = number
                    current = None

            depth = after

        if depth != 0 or current is not None:
            result.balanced = False

        return result

    def listen_port(self, stripped: str) -> int | None:
        """Port of a `listen` directive, or None for other lines."""
        listen = self.LISTEN_RE.match(stripped)
        if not listen:
            return None
        return self._parse_port(listen.group(1))

    def _collect_directive(self, block: ServerBlock, stripped: str, number: int) -> None:
        """Record listen ports, server names and roots for a server block."""
        if self.LISTEN_RE.match(stripped):
            port = self.listen_port(stripped)
            if port is not None:
                block.listen_lines.append(number)
                if port not in block.ports:
                    block.ports.append(port)
            return

        names = self.SERVER_NAME_RE.match(stripped)
        if names:
            for name in names.group(1).split():
                if name not in block.server_names:
                    block.server_names.append(name)
            return

        if self.ROOT_RE.match(stripped):
            block.root_lines.append(number)

    def _parse_port(self, address: str) -> int | None:
        """Extract the port from a listen address.

        Handles `80`, `[::]:443`, `127.0.0.1:8080` and bare addresses
        (which nginx serves on port 80). Unix sockets have no port.
        """
        if address.startswith("unix:"):
            return None
        candidate = address
        if ":" in address and not address.endswith("]"):
            candidate = address.rsplit(":", 1)[1]
        if candidate.isdigit():
            return int(candidate)
        return 80
