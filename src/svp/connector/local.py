"""Local Connector - Provision the machine svp runs on.

Mirrors SSHConnector's interface so services and actions never care
where commands execute.
"""

import contextlib
import os
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Callable

from svp.connector.ssh import CommandResult, redact


class LocalConnector:
    """Run commands through `bash -c` and touch files directly."""

    def __init__(self, on_command: Callable[[str], None] | None = None) -> None:
        self.on_command = on_command

    def __enter__(self) -> "LocalConnector":
        return self

    def __exit__(self, *args: object) -> None:
        pass

    def run(
        self,
        command: str,
        use_sudo: bool | None = None,
        timeout: float | None = None,
        secrets: Sequence[str] = (),
    ) -> CommandResult:
        """Execute a shell command locally.

        `use_sudo` is accepted for interface parity; svp expects to run
        as root on the target machine. `secrets` are masked in the debug
        echo and in CommandResult.command.
        """
        shown = redact(command, secrets)
        if self.on_command:
            self.on_command(shown)

        try:
            proc = subprocess.run(
                ["bash", "-c", command],
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(command=shown, stdout="", stderr=f"Timed out after {e.timeout}s", exit_code=124)
        except OSError as e:
            return CommandResult(command=shown, stdout="", stderr=str(e), exit_code=127)

        return CommandResult(
            command=shown,
            stdout=proc.stdout,
            stderr=proc.stderr,
            exit_code=proc.returncode,
        )

    def read_file(self, path: str) -> str | None:
        try:
            return Path(path).read_text()
        except FileNotFoundError:
            return None

    def file_exists(self, path: str) -> bool:
        return Path(path).is_file()

    def dir_exists(self, path: str) -> bool:
        return Path(path).is_dir()

    def write_file(self, path: str, content: str) -> bool:
        """Atomically replace `path` via a temp file in the same directory.

        The temp file is removed on every failure path, so a crash
        mid-write never leaves a truncated target behind.
        """
        target = Path(path)
        try:
            fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".svp-tmp", dir=target.parent)
        except OSError:
            return False

        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            if target.exists():
                shutil.copymode(target, temp_name)
            else:
                os.chmod(temp_name, 0o644)
            os.replace(temp_name, target)
        except OSError:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_name)
            return False
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_name)
            raise
        return True

    def remove_file(self, path: str) -> bool:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass
        except OSError:
            return False
        return True

    def make_dirs(self, path: str) -> bool:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return True
