"""Vhost Action - transactional edits of one domain's nginx vhost.

CONTRACT:
- read_only: False (MODIFIES SERVER)
- requires_backup: True
- rollback_support: True
- prerequisites: ["vhost exists", "nginx -t passes"]

`mutate` only rewrites the file. `commit` validates with `nginx -t`,
restores the pre-edit text if validation fails, and reloads otherwise.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from svp.config import ProvisionerSettings
from svp.connector import Connector
from svp.errors import CommandError, ValidationFailedError, VhostNotFoundError
from svp.model.vhost import EditResult, MutationResult
from svp.output import StatusPrinter
from svp.services.nginx import NginxService

Operation = Callable[[list[str]], EditResult]


@dataclass
class ActionContract:
    """Explicit contract for an action."""

    read_only: bool
    requires_backup: bool
    rollback_support: bool
    prerequisites: list[str]


def create_backup_path(original_path: str, backup_dir: str) -> str:
    """Generate a timestamped backup path.

    Args:
        original_path: Path of the file being backed up.
        backup_dir: Directory that collects backups.

    Returns:
        Backup path like /etc/nginx/backups/example.com.conf.bak-YYYYMMDD-HHMMSS
    """
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    filename = original_path.rsplit("/", 1)[-1]
    return f"{backup_dir.rstrip('/')}/{filename}.bak-{timestamp}"


class VhostTransaction:
    """Read, transform and write back a vhost file.

    Safety measures:
    1. Backs up the existing file before writing
    2. Writes atomically (temp file + rename)
    3. Tests with nginx -t before reload
    4. Restores the original text if the test fails
    """

    CONTRACT = ActionContract(
        read_only=False,
        requires_backup=True,
        rollback_support=True,
        prerequisites=["vhost exists", "nginx -t passes"],
    )

    def __init__(
        self,
        connector: Connector,
        settings: ProvisionerSettings | None = None,
        nginx: NginxService | None = None,
        printer: StatusPrinter | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or ProvisionerSettings()
        self.printer = printer or StatusPrinter()
        self.nginx = nginx or NginxService(connector, self.settings, self.printer)

    def path(self, domain: str) -> str:
        return self.settings.vhost_path(domain)

    def read(self, domain: str) -> str:
        """Return the vhost text.

        Raises:
            VhostNotFoundError: The file does not exist.
        """
        path = self.path(domain)
        content = self.connector.read_file(path)
        if content is None:
            raise VhostNotFoundError(path)
        return content

    def mutate(self, domain: str, operations: Sequence[Operation]) -> MutationResult:
        """Apply operations in order and write the result back.

        Each operation receives the previous one's lines. The file is
        left untouched when the final text equals the original.

        Raises:
            VhostNotFoundError: The vhost does not exist.
            CommandError: The backup or the write failed.
        """
        path = self.path(domain)
        original = self.read(domain)

        lines = original.split("\n")
        results: list[EditResult] = []
        for operation in operations:
            result = operation(lines)
            results.append(result)
            lines = result.lines

        mutation = MutationResult(path=path, original=original, content="\n".join(lines), results=results)
        if not mutation.written:
            return mutation

        mutation.backup_path = self.backup(path, original)
        if not self.connector.write_file(path, mutation.content):
            raise CommandError(f"failed to write updated config: {path}")
        return mutation

    def commit(self, mutation: MutationResult) -> None:
        """Validate and reload after a write, restoring the original on failure.

        Raises:
            ValidationFailedError: `nginx -t` rejected the new text. The
                original file content has been restored.
            ReloadFailedError: nginx could not be reloaded.
        """
        if not mutation.written:
            return

        self.printer.log("Testing Nginx configuration...")
        result = self.nginx.test_config()
        if not result.success:
            self.printer.fail("Nginx configuration test failed")
            self.rollback(mutation)
            raise ValidationFailedError("nginx config test failed", output=result.output)
        self.printer.ok("Nginx configuration is valid")

        self.printer.log("Reloading Nginx...")
        self.nginx.reload()
        self.printer.ok("Nginx reloaded successfully")

    def rollback(self, mutation: MutationResult) -> None:
        """Put the pre-edit text back in place."""
        self.restore(mutation.path, mutation.original, mutation.backup_path)

    def restore(self, path: str, content: str, backup_path: str | None = None) -> None:
        if not self.connector.write_file(path, content):
            raise CommandError(f"failed to restore {path}; backup at {backup_path}")
        self.printer.fix(f"Restored previous configuration: {path}")

    def apply(self, domain: str, operations: Sequence[Operation]) -> MutationResult:
        """mutate() followed by commit()."""
        mutation = self.mutate(domain, operations)
        self.commit(mutation)
        return mutation

    def backup(self, path: str, content: str) -> str:
        """Copy `content` into a timestamped file under backup_dir."""
        backup_dir = self.settings.backup_dir
        if not self.connector.make_dirs(backup_dir):
            raise CommandError(f"failed to create backup directory: {backup_dir}")

        backup_path = create_backup_path(path, backup_dir)
        if not self.connector.write_file(backup_path, content):
            raise CommandError(f"failed to back up {path}")
        return backup_path
