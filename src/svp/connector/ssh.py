"""SSH Connector - Provision a remote server over SSH.

This module handles all SSH communication with remote servers:
running commands and reading or atomically replacing files.
"""

import base64
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import paramiko
from paramiko.ssh_exception import AuthenticationException, SSHException

SECRET_MASK = "********"


def redact(command: str, secrets: Sequence[str]) -> str:
    """Replace each secret in a command line, raw or shell-quoted, with a mask."""
    for secret in secrets:
        if not secret:
            continue
        quoted = shlex.quote(secret)
        if quoted != secret:
            command = command.replace(quoted, SECRET_MASK)
        command = command.replace(secret, SECRET_MASK)
    return command


@dataclass
class SSHConfig:
    """SSH connection configuration."""

    host: str
    user: str = "root"
    port: int = 22
    key_path: str | None = None
    password: str | None = None  # Fallback, prefer keys
    use_sudo: bool = True
    timeout: int = 30


@dataclass
class CommandResult:
    """Result of a command execution."""

    command: str
    stdout: str
    stderr: str
    exit_code: int
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        self.success = self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined output, stderr first (nginx -t writes there)."""
        return "\n".join(part for part in (self.stderr.strip(), self.stdout.strip()) if part)


class SSHConnector:
    """SSH connection manager for remote provisioning.

    Example:
        >>> config = SSHConfig(host="192.168.1.100", user="deploy")
        >>> with SSHConnector(config) as ssh:
        ...     result = ssh.run("nginx -t")
        ...     print(result.stderr)
    """

    def __init__(self, config: SSHConfig, on_command: Callable[[str], None] | None = None) -> None:
        """Initialize SSH connector with configuration."""
        self.config = config
        self.on_command = on_command
        self._client: paramiko.SSHClient | None = None

    def connect(self) -> None:
        """Establish SSH connection."""
        self._client = paramiko.SSHClient()
        self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs: dict = {
            "hostname": self.config.host,
            "port": self.config.port,
            "username": self.config.user,
            "timeout": self.config.timeout,
        }

        # Prefer key-based authentication
        if self.config.key_path:
            key_path = Path(self.config.key_path).expanduser()
            if key_path.exists():
                connect_kwargs["key_filename"] = str(key_path)
        elif self.config.password:
            connect_kwargs["password"] = self.config.password

        try:
            self._client.connect(**connect_kwargs)
        except AuthenticationException as e:
            raise ConnectionError(f"Authentication failed: {e}") from e
        except SSHException as e:
            raise ConnectionError(f"SSH error: {e}") from e

    def disconnect(self) -> None:
        """Close SSH connection."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SSHConnector":
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    def run(
        self,
        command: str,
        use_sudo: bool | None = None,
        timeout: float | None = None,
        secrets: Sequence[str] = (),
    ) -> CommandResult:
        """Execute a command on the remote server.

        Args:
            command: Shell command line.
            use_sudo: Whether to use sudo. Defaults to config setting.
            timeout: Command timeout in seconds. None waits indefinitely,
                since package installs and certbot runs can be slow.
            secrets: Values masked in the debug echo and in
                CommandResult.command. The sudo password always is.

        Returns:
            CommandResult with stdout, stderr, and exit_code.
        """
        if not self._client:
            raise RuntimeError("Not connected. Use 'with SSHConnector(config):' context.")

        if use_sudo is None:
            use_sudo = self.config.use_sudo

        if self.on_command:
            self.on_command(redact(command, secrets))

        if use_sudo and self.config.user != "root":
            wrapped = f"bash -c {shlex.quote(command)}"
            if self.config.password:
                # Use -S to read password from stdin
                command = f"echo {shlex.quote(self.config.password)} | sudo -S {wrapped}"
            else:
                command = f"sudo {wrapped}"

        shown = redact(command, [*secrets, self.config.password or ""])
        try:
            stdin, stdout, stderr = self._client.exec_command(command, timeout=timeout)
            exit_code = stdout.channel.recv_exit_status()

            return CommandResult(
                command=shown,
                stdout=stdout.read().decode("utf-8", errors="replace"),
                stderr=stderr.read().decode("utf-8", errors="replace"),
                exit_code=exit_code,
            )
        except (SSHException, OSError) as e:
            return CommandResult(
                command=shown,
                stdout="",
                stderr=f"SSH Execution Error: {str(e)}",
                exit_code=255,
            )

    def read_file(self, path: str) -> str | None:
        """Read file contents, or None if the file doesn't exist."""
        if not self.file_exists(path):
            return None
        result = self.run(f"cat {shlex.quote(path)}")
        if result.success:
            return result.stdout
        return None

    def file_exists(self, path: str) -> bool:
        return self.run(f"test -f {shlex.quote(path)}").success

    def dir_exists(self, path: str) -> bool:
        return self.run(f"test -d {shlex.quote(path)}").success

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    def write_file(self, path: str, content: str) -> bool:
        """Atomically replace a file on the remote server.

        Content travels base64-encoded into a temp file beside the
        target, which is then renamed over it.
        """
        temp_path = f"{path}.svp-tmp"
        encoded = base64.b64encode(content.encode()).decode()
        result = self.run(f"echo {encoded} | base64 -d > {shlex.quote(temp_path)}")
        if not result.success:
            self.run(f"rm -f {shlex.quote(temp_path)}")
            return False

        result = self.run(f"mv -f {shlex.quote(temp_path)} {shlex.quote(path)}")
        if not result.success:
            self.run(f"rm -f {shlex.quote(temp_path)}")
            return False
        return True

    def remove_file(self, path: str) -> bool:
        return self.run(f"rm -f {shlex.quote(path)}").success

    def make_dirs(self, path: str) -> bool:
        return self.run(f"mkdir -p {shlex.quote(path)}").success
