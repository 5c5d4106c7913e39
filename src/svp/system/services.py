"""Systemd service lifecycle."""

import shlex

from svp.connector import Connector
from svp.errors import CommandError
from svp.output import StatusPrinter


class ServiceManager:
    """Thin systemctl wrapper. enable, start and restart raise CommandError on failure."""

    def __init__(self, connector: Connector, printer: StatusPrinter | None = None) -> None:
        self.connector = connector
        self.printer = printer or StatusPrinter()

    def _systemctl(self, verb: str, service: str) -> None:
        result = self.connector.run(f"systemctl {verb} {shlex.quote(service)}")
        if not result.success:
            raise CommandError.from_result(f"failed to {verb} {service}", result)

    def is_enabled(self, service: str) -> bool:
        return self.connector.run(f"systemctl is-enabled {shlex.quote(service)}").success

    def is_active(self, service: str) -> bool:
        return self.connector.run(f"systemctl is-active {shlex.quote(service)}").success

    def enable(self, service: str) -> None:
        self._systemctl("enable", service)

    def start(self, service: str) -> None:
        self._systemctl("start", service)

    def restart(self, service: str) -> None:
        self._systemctl("restart", service)

    def ensure_running(self, service: str, verify_only: bool = False) -> None:
        """Make sure a service is enabled and active.

        In verify-only mode nothing is changed and drift raises.
        """
        enabled = self.is_enabled(service)
        active = self.is_active(service)

        if not enabled:
            if verify_only:
                self.printer.fail(f"{service} not enabled")
                raise CommandError(f"{service} not enabled")
            self.printer.fix(f"Enabling {service} service")
            self.enable(service)

        if not active:
            if verify_only:
                self.printer.fail(f"{service} not running")
                raise CommandError(f"{service} not running")
            self.printer.fix(f"Starting {service} service")
            self.start(service)

        if enabled and active:
            self.printer.ok(f"{service} running")
