"""Cron job registration."""

import os

from suitecrmbootstrap.constants import CRON_SCHEDULE


class CronService:
    def __init__(self, cron_dir: str, logger):
        self.cron_dir = cron_dir
        self.logger = logger

    def generate(self, name: str, command: str, run_as: str, schedule: str = CRON_SCHEDULE) -> str:
        """Write ``<cron_dir>/<name>`` with a single entry and return its path."""
        os.makedirs(self.cron_dir, exist_ok=True)
        path = os.path.join(self.cron_dir, name)
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(f"{schedule} {run_as} {command}\n")
        os.chmod(path, 0o644)
        self.logger.debug("Cron entry for %s written to %s", name, path)
        return path
