"""Web server lifecycle hooks used during the install wizard."""

from typing import Callable, Sequence

from suitecrmbootstrap.errors import BootstrapError


class WebServerService:
    """Starts, stops and validates the web server through its own scripts."""

    def __init__(
        self,
        logger,
        console,
        start_command: Sequence[str],
        stop_command: Sequence[str],
        validate_command: Sequence[str] = (),
    ):
        self.logger = logger
        self.console = console
        self.start_command = list(start_command)
        self.stop_command = list(stop_command)
        self.validate_command = list(validate_command)

    def start(self, run_cmd: Callable):
        self.console.print("[blue]Starting web server...[/blue]")
        run_cmd(self.start_command, check=True, capture_output=True)

    def stop(self, run_cmd: Callable):
        self.console.print("[dim]Stopping web server...[/dim]")
        run_cmd(self.stop_command, check=True, capture_output=True)

    def validate(self, run_cmd: Callable) -> bool:
        if not self.validate_command:
            self.logger.debug("No web server validation command configured")
            return True
        try:
            result = run_cmd(self.validate_command, check=False, capture_output=True)
        except BootstrapError as exc:
            self.logger.error("Web server validation could not run: %s", exc)
            return False
        if result.returncode != 0:
            self.logger.error((result.stderr or "").strip() or "Web server validation failed")
            return False
        return True
