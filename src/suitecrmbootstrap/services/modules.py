"""Container entrypoint helpers: start command detection and ordered module setup."""

import os
from typing import Callable, Sequence

from suitecrmbootstrap.errors import BootstrapError


def is_start_command(args: Sequence[str], start_commands: Sequence[Sequence[str]]) -> bool:
    """True when ``args`` begins with one of the configured start commands."""
    for command in start_commands:
        if command and list(args[: len(command)]) == list(command):
            return True
    return False


class ModuleInitializer:
    """Runs each image module's setup, in order, before the application starts."""

    def __init__(self, logger, console, setup_script: str):
        self.logger = logger
        self.console = console
        self.setup_script = setup_script

    def setup_module(self, module: str, run_cmd: Callable):
        script = self.setup_script.format(module=module)
        if not os.path.exists(script):
            self.logger.warning("No setup script for module '%s' at %s, skipping", module, script)
            return
        self.logger.info("Initializing module '%s'", module)
        run_cmd([script], check=True)

    def initialize(
        self,
        modules: Sequence[str],
        run_cmd: Callable,
        bootstrap_app: Callable[[], int],
    ) -> int:
        for module in modules:
            try:
                self.setup_module(module, run_cmd)
            except BootstrapError as exc:
                self.console.print(f"[bold red]Error:[/bold red] {exc}")
                self.logger.error("Setup of module '%s' failed: %s", module, exc)
                return 1
        return bootstrap_app()
