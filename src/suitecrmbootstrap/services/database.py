"""Database connectivity checks for SuiteCRM bootstrap."""

import time
from typing import Callable, List

from suitecrmbootstrap.errors import ConnectivityError
from suitecrmbootstrap.errors_catalog import actionable_error
from suitecrmbootstrap.models import DatabaseEndpoint


class DatabaseWaiter:
    """Polls a MySQL/MariaDB endpoint until it answers a trivial query."""

    PROBE_QUERY = "SELECT 1"

    def __init__(
        self,
        logger,
        console,
        mysql_bin: str = "mysql",
        max_retries: int = 12,
        sleep_seconds: float = 5.0,
        connect_timeout: int = 5,
    ):
        self.logger = logger
        self.console = console
        self.mysql_bin = mysql_bin
        self.max_retries = max(1, max_retries)
        self.sleep_seconds = sleep_seconds
        self.connect_timeout = connect_timeout

    def build_command(self, endpoint: DatabaseEndpoint) -> List[str]:
        return [
            self.mysql_bin,
            "-N",
            "-h",
            endpoint.host,
            "-P",
            str(endpoint.port),
            "-u",
            endpoint.user,
            f"--connect-timeout={self.connect_timeout}",
            endpoint.name,
        ]

    def check_connection(self, endpoint: DatabaseEndpoint, run_cmd: Callable) -> bool:
        result = run_cmd(
            self.build_command(endpoint),
            check=False,
            capture_output=True,
            input_text=self.PROBE_QUERY,
            env={"MYSQL_PWD": endpoint.password or ""},
        )
        return result.returncode == 0

    def wait(self, endpoint: DatabaseEndpoint, run_cmd: Callable) -> int:
        """Return the attempt number on which the database answered."""
        for field_name in ("host", "port", "name", "user"):
            if not str(getattr(endpoint, field_name) or ""):
                raise ConnectivityError(f"Missing database {field_name} for connection check.")

        self.console.print("[yellow]Waiting for database to be ready...[/yellow]")
        self.logger.info("Trying to connect to the database server")

        for attempt in range(1, self.max_retries + 1):
            if self.check_connection(endpoint, run_cmd):
                self.logger.debug("Database answered on attempt %s", attempt)
                self.console.print("[green]Database is ready.[/green]")
                return attempt
            if attempt < self.max_retries:
                time.sleep(self.sleep_seconds)

        self.logger.error("Could not connect to the database")
        raise ConnectivityError(
            actionable_error(
                "database_unreachable",
                host=endpoint.host,
                port=str(endpoint.port),
                attempts=str(self.max_retries),
            )
        )
