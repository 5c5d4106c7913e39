"""Console status output.

Every provisioning step reports through one StatusPrinter so the CLI,
actions and services share the same rich console and the same tags.
"""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel


class StatusPrinter:
    """Tagged status lines on a rich console.

    Tags follow the provisioning vocabulary: CREATE for work being done,
    VERIFY for state already correct, SKIP, FIX for repaired drift.
    """

    def __init__(self, console: Console | None = None, err_console: Console | None = None) -> None:
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def section(self, title: str) -> None:
        self.console.print(f"\n[bold]=== {escape(title)} ===[/]")

    def log(self, message: str) -> None:
        self.console.print(f"[bold green]\\[CREATE][/] {escape(message)}")

    def verify(self, message: str) -> None:
        self.console.print(f"[cyan]\\[VERIFY] {escape(message)}[/]")

    def skip(self, message: str) -> None:
        self.console.print(f"[dim]\\[SKIP]   {escape(message)}[/]")

    def fix(self, message: str) -> None:
        self.console.print(f"[yellow]\\[FIX]    {escape(message)}[/]")

    def warn(self, message: str) -> None:
        self.console.print(f"[bold yellow]\\[!][/] {escape(message)}")

    def ok(self, message: str) -> None:
        self.console.print(f"[bold green]\\[✓][/] {escape(message)}")

    def fail(self, message: str) -> None:
        self.console.print(f"[bold red]\\[✗][/] {escape(message)}")

    def error(self, message: str, output: str = "") -> None:
        """Print an error and, verbatim, the external output behind it."""
        self.err_console.print(f"[bold red]\\[-] Error:[/] {escape(message)}")
        if output:
            self.err_console.print(escape(output), style="dim", highlight=False)

    def info(self, message: str) -> None:
        """Plain line, no tag."""
        self.console.print(escape(message), highlight=False)

    def panel(self, text: str, title: str) -> None:
        """Boxed block of external tool output."""
        self.console.print(Panel(escape(text), title=escape(title), style="cyan", expand=False))

    def command(self, command: str) -> None:
        """Debug echo of a command about to run."""
        self.console.print(f"[dim]\\[DEBUG] Running: {escape(command)}[/]")
