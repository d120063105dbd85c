"""Filesystem helpers for SuiteCRM bootstrap."""

import logging
import os
import shutil
import sys
from typing import Optional

from rich.console import Console


def am_i_root() -> bool:
    if sys.platform == "win32":
        return False
    return os.geteuid() == 0


class FileSystemService:
    """Encapsulates directory, permission and ownership side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def am_i_root(self) -> bool:
        return am_i_root()

    def ensure_dir(self, path: str):
        os.makedirs(path, exist_ok=True)

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def set_ownership(self, path: str, user: Optional[str], group: Optional[str] = None):
        try:
            shutil.chown(path, user=user, group=group)
        except (LookupError, OSError) as exc:
            self.logger.warning("Could not change ownership of %s: %s", path, exc)

    def configure_permissions_ownership(
        self,
        path: str,
        dir_mode: int,
        file_mode: int,
        user: Optional[str] = None,
        group: Optional[str] = None,
    ):
        """Apply modes and ownership to ``path`` and, for directories, everything below it."""
        if not os.path.exists(path):
            return

        def apply(target: str, mode: int):
            self.set_permissions(target, mode)
            if user or group:
                self.set_ownership(target, user, group)

        if not os.path.isdir(path):
            apply(path, file_mode)
            return

        apply(path, dir_mode)
        for current_root, dirs, files in os.walk(path):
            for directory in dirs:
                apply(os.path.join(current_root, directory), dir_mode)
            for file_name in files:
                apply(os.path.join(current_root, file_name), file_mode)

    def remove_file(self, path: str):
        try:
            os.remove(path)
            self.logger.debug("Removed file: %s", path)
        except FileNotFoundError:
            return
        except OSError as exc:
            message = f"Warning: Could not remove {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
