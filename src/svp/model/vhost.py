"""Vhost model dataclasses - line-level view of an nginx virtual host file.

A vhost is never parsed into a full AST. Lines keep their raw text and
the scanner attaches brace depth and enclosing-block information.
"""

from dataclasses import dataclass, field


@dataclass
class LineInfo:
    """Nesting context for a single config line."""

    number: int  # 0-based index into the line list
    text: str
    depth: int
    opens_block_with: str | None = None  # stripped opener text, e.g. "server {"
    stack: tuple[str, ...] = ()  # enclosing block openers, outermost first
    server: int | None = None  # index of the enclosing top-level server block

    @property
    def stripped(self) -> str:
        return self.text.strip()

    @property
    def indent(self) -> str:
        """Leading whitespace of the line."""
        return self.text[: len(self.text) - len(self.text.lstrip())]

    @property
    def in_server_body(self) -> bool:
        """True for lines directly inside a top-level server block."""
        return self.server is not None and self.depth == 1


@dataclass
class ServerBlock:
    """A top-level `server { ... }` block.

    `start` is the opener line and `end` the matching closing brace,
    both inclusive. `end` is None when the file ends before the block
    is closed.
    """

    index: int
    start: int
    end: int | None = None
    ports: list[int] = field(default_factory=list)
    server_names: list[str] = field(default_factory=list)
    listen_lines: list[int] = field(default_factory=list)
    root_lines: list[int] = field(default_factory=list)

    @property
    def is_ssl(self) -> bool:
        return 443 in self.ports

    @property
    def ssl_only(self) -> bool:
        """Listens on 443 and nothing else."""
        return bool(self.ports) and all(p == 443 for p in self.ports)

    @property
    def serves_files(self) -> bool:
        """Has a `root` directive of its own, i.e. serves the site."""
        return bool(self.root_lines)

    @property
    def closed(self) -> bool:
        return self.end is not None

    @property
    def line_count(self) -> int:
        if self.end is None:
            return 0
        return self.end - self.start + 1

    def contains(self, line_number: int) -> bool:
        if self.end is None:
            return line_number >= self.start
        return self.start <= line_number <= self.end


@dataclass
class EditResult:
    """Outcome of a single text transform.

    `applied` reports whether the expected mutation took place (an
    anchor was found, a block was removed, a root was fixed). It can be
    True while `lines` equals the input, e.g. when re-enabling auth
    with the same htpasswd path.
    """

    lines: list[str]
    applied: bool
    existed: bool = False
    detail: str = ""


@dataclass
class MutationResult:
    """Outcome of a vhost file transaction."""

    path: str
    original: str
    content: str
    results: list[EditResult] = field(default_factory=list)
    backup_path: str | None = None

    @property
    def written(self) -> bool:
        return self.content != self.original

    @property
    def applied(self) -> bool:
        """True when every transform reported its expected mutation."""
        return all(r.applied for r in self.results)
