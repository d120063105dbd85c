"""Persistence of application state to a durable volume."""

import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from suitecrmbootstrap.errors import PersistenceError
from suitecrmbootstrap.errors_catalog import actionable_error
from suitecrmbootstrap.services.filesystem import am_i_root


class PersistenceService:
    """Keeps declared paths on ``<volume_root>/<app>``, symlinked from the install dir.

    The initialization marker lives inside the app's volume directory and is
    written only by ``persist``.
    """

    MARKER_FILE = ".initialized.json"
    SCHEMA_VERSION = 1

    def __init__(self, volume_root: str, install_dir: str, logger):
        self.volume_root = volume_root
        self.install_dir = install_dir
        self.logger = logger

    def volume_dir(self, app_name: str) -> str:
        return os.path.join(self.volume_root, app_name)

    def marker_path(self, app_name: str) -> str:
        return os.path.join(self.volume_dir(app_name), self.MARKER_FILE)

    def is_initialized(self, app_name: str) -> bool:
        return os.path.isfile(self.marker_path(app_name))

    def read_marker(self, app_name: str) -> Optional[Dict[str, Any]]:
        path = self.marker_path(app_name)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Could not read initialization marker '{path}': {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Initialization marker '{path}' has invalid format.")
        return data

    def relativize(self, path: str) -> str:
        if os.path.isabs(path):
            relative = os.path.relpath(path, self.install_dir)
        else:
            relative = os.path.normpath(path)
        if relative == os.pardir or relative.startswith(os.pardir + os.sep):
            raise PersistenceError(f"Path '{path}' is outside of {self.install_dir}.")
        return relative

    def persist(self, app_name: str, paths: Sequence[str]):
        """Move each path onto the volume, leaving a symlink in the install dir."""
        volume_dir = self.volume_dir(app_name)
        os.makedirs(volume_dir, exist_ok=True)

        if not paths:
            self.logger.warning("No files are configured to be persisted")

        persisted = []
        for path in paths:
            relative = self.relativize(path)
            live = os.path.join(self.install_dir, relative)
            if not os.path.lexists(live):
                raise PersistenceError(
                    actionable_error("persisted_path_missing", action="persist", path=live)
                )
            destination = os.path.join(volume_dir, relative)
            if not (os.path.lexists(destination) and _same_path(live, destination)):
                self._copy(live, destination)
                self._copy_ownership(live, destination)
            self._link(live, destination)
            persisted.append(relative)
            self.logger.debug("Persisted %s to %s", live, destination)

        self._write_marker(
            app_name,
            {
                "schema_version": self.SCHEMA_VERSION,
                "app": app_name,
                "paths": persisted,
                "initialized_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def restore(self, app_name: str, paths: Sequence[str]):
        """Point each path of a fresh install dir at its copy on the volume."""
        volume_dir = self.volume_dir(app_name)
        for path in paths:
            relative = self.relativize(path)
            source = os.path.join(volume_dir, relative)
            if not os.path.lexists(source):
                raise PersistenceError(
                    actionable_error("persisted_path_missing", action="restore", path=source)
                )
            live = os.path.join(self.install_dir, relative)
            self._link(live, source)
            self.logger.debug("Restored %s from %s", live, source)

    def _copy(self, source: str, destination: str):
        """Replace ``destination`` with a verbatim copy of ``source``."""
        if _same_path(source, destination):
            raise PersistenceError(f"Cannot copy '{source}' onto itself.")
        try:
            _remove(destination)
            os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
            if os.path.isdir(source) and not os.path.islink(source):
                shutil.copytree(source, destination, symlinks=True)
            else:
                shutil.copy2(source, destination, follow_symlinks=False)
        except OSError as exc:
            raise PersistenceError(f"Could not copy '{source}' to '{destination}': {exc}") from exc

    def _copy_ownership(self, source: str, destination: str):
        """Give each copy the owner of its original."""
        if not am_i_root():
            return
        pairs = [(source, destination)]
        if os.path.isdir(source) and not os.path.islink(source):
            for current_root, dirs, files in os.walk(source):
                for name in dirs + files:
                    original = os.path.join(current_root, name)
                    relative = os.path.relpath(original, source)
                    pairs.append((original, os.path.join(destination, relative)))
        try:
            for original, copy in pairs:
                stat = os.lstat(original)
                os.lchown(copy, stat.st_uid, stat.st_gid)
        except OSError as exc:
            raise PersistenceError(f"Could not set ownership on '{destination}': {exc}") from exc

    def _link(self, live: str, target: str):
        try:
            _remove(live)
            os.makedirs(os.path.dirname(live) or ".", exist_ok=True)
            os.symlink(target, live)
        except OSError as exc:
            raise PersistenceError(f"Could not link '{live}' to '{target}': {exc}") from exc

    def _write_marker(self, app_name: str, data: Dict[str, Any]):
        path = self.marker_path(app_name)
        fd, temp_path = tempfile.mkstemp(
            prefix=".initialized-", suffix=".json", dir=os.path.dirname(path)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(data, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, path)
        except OSError as exc:
            raise PersistenceError(f"Could not write initialization marker '{path}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass


def _same_path(source: str, destination: str) -> bool:
    return os.path.realpath(source) == os.path.realpath(destination)


def _remove(path: str):
    if not os.path.lexists(path):
        return
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)
