import json
import os

import pytest

import suitecrmbootstrap.services.persistence as persistence_module
from suitecrmbootstrap.errors import PersistenceError
from suitecrmbootstrap.services.persistence import PersistenceService


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


@pytest.fixture
def install_dir(tmp_path):
    root = tmp_path / "suitecrm"
    (root / "custom" / "modules").mkdir(parents=True)
    (root / "custom" / "modules" / "logic_hooks.php").write_text("<?php // hooks\n", encoding="utf-8")
    (root / "upload").mkdir()
    (root / "upload" / "note.txt").write_text("attachment", encoding="utf-8")
    (root / "config.php").write_text("<?php $sugar_config = array ();\n", encoding="utf-8")
    return root


@pytest.fixture
def service(tmp_path, install_dir):
    return PersistenceService(
        volume_root=str(tmp_path / "bitnami"),
        install_dir=str(install_dir),
        logger=DummyLogger(),
    )


PATHS = ("config.php", "custom", "upload")


def test_persist_copies_paths_and_writes_marker(tmp_path, service):
    assert service.is_initialized("suitecrm") is False

    service.persist("suitecrm", PATHS)

    volume = tmp_path / "bitnami" / "suitecrm"
    assert (volume / "config.php").read_text(encoding="utf-8").startswith("<?php")
    assert (volume / "custom" / "modules" / "logic_hooks.php").exists()
    assert (volume / "upload" / "note.txt").read_text(encoding="utf-8") == "attachment"
    assert service.is_initialized("suitecrm") is True

    marker = service.read_marker("suitecrm")
    assert marker["app"] == "suitecrm"
    assert marker["paths"] == list(PATHS)
    assert marker["schema_version"] == 1
    assert "initialized_at" in marker


def fresh_image_layer(install_dir):
    """Recreate the install dir as a new container would ship it."""
    for name in ("config.php", "custom", "upload"):
        path = install_dir / name
        if path.is_symlink() or path.is_file():
            path.unlink()
    (install_dir / "config.php").write_text("<?php // image default\n", encoding="utf-8")
    (install_dir / "upload").mkdir()


def test_persist_leaves_symlinks_to_volume(tmp_path, service, install_dir):
    service.persist("suitecrm", PATHS)

    volume = tmp_path / "bitnami" / "suitecrm"
    for name in PATHS:
        assert (install_dir / name).is_symlink()
        assert os.path.realpath(install_dir / name) == os.path.realpath(volume / name)


def test_writes_after_persist_land_on_volume(tmp_path, service, install_dir):
    service.persist("suitecrm", PATHS)

    (install_dir / "upload" / "invoice.pdf").write_text("pdf", encoding="utf-8")

    volume = tmp_path / "bitnami" / "suitecrm"
    assert (volume / "upload" / "invoice.pdf").read_text(encoding="utf-8") == "pdf"


def test_persist_then_restore_round_trips_contents(service, install_dir):
    service.persist("suitecrm", PATHS)
    (install_dir / "upload" / "invoice.pdf").write_text("pdf", encoding="utf-8")

    fresh_image_layer(install_dir)
    service.restore("suitecrm", PATHS)

    assert (install_dir / "upload" / "note.txt").read_text(encoding="utf-8") == "attachment"
    assert (install_dir / "upload" / "invoice.pdf").read_text(encoding="utf-8") == "pdf"
    assert (install_dir / "custom" / "modules" / "logic_hooks.php").exists()
    assert (install_dir / "config.php").read_text(encoding="utf-8").startswith("<?php $sugar")


def test_persist_twice_keeps_volume_contents(tmp_path, service, install_dir):
    service.persist("suitecrm", PATHS)
    (install_dir / "upload" / "invoice.pdf").write_text("pdf", encoding="utf-8")

    service.persist("suitecrm", PATHS)

    volume = tmp_path / "bitnami" / "suitecrm"
    assert (volume / "upload" / "invoice.pdf").exists()
    assert (install_dir / "upload").is_symlink()


def test_persist_accepts_absolute_paths_inside_install_dir(tmp_path, service, install_dir):
    service.persist("suitecrm", [str(install_dir / "config.php")])

    assert (tmp_path / "bitnami" / "suitecrm" / "config.php").exists()
    assert service.read_marker("suitecrm")["paths"] == ["config.php"]


@pytest.mark.parametrize("path", ["/etc/passwd", "../outside", "custom/../../outside"])
def test_paths_outside_install_dir_are_rejected(service, path):
    with pytest.raises(PersistenceError, match="outside"):
        service.persist("suitecrm", [path])


def test_persist_fails_on_missing_path_without_marker(service):
    with pytest.raises(PersistenceError, match="does not exist"):
        service.persist("suitecrm", ["config.php", "themes"])

    assert service.is_initialized("suitecrm") is False


def test_restore_fails_on_missing_path_in_volume(service):
    service.persist("suitecrm", ["config.php"])

    with pytest.raises(PersistenceError, match="Cannot restore"):
        service.restore("suitecrm", ["config.php", "upload"])


def test_persist_keeps_symlinks(service, install_dir, tmp_path):
    os.symlink("config.php", install_dir / "config.link")

    service.persist("suitecrm", ["config.link"])

    persisted = tmp_path / "bitnami" / "suitecrm" / "config.link"
    assert persisted.is_symlink()
    assert os.readlink(persisted) == "config.php"


def test_persist_with_nothing_declared_still_marks_volume(service):
    service.persist("suitecrm", [])

    assert service.is_initialized("suitecrm") is True
    assert service.logger.warnings == ["No files are configured to be persisted"]


def test_read_marker_rejects_invalid_content(tmp_path, service):
    volume = tmp_path / "bitnami" / "suitecrm"
    volume.mkdir(parents=True)
    (volume / ".initialized.json").write_text(json.dumps(["not", "a", "mapping"]), encoding="utf-8")

    with pytest.raises(PersistenceError, match="invalid format"):
        service.read_marker("suitecrm")


def test_persist_copies_ownership_when_root(tmp_path, service, install_dir, monkeypatch):
    owners = {}
    monkeypatch.setattr(persistence_module, "am_i_root", lambda: True)
    monkeypatch.setattr(
        persistence_module.os, "lchown", lambda path, uid, gid: owners.update({path: (uid, gid)})
    )

    service.persist("suitecrm", ["config.php", "custom"])

    volume = tmp_path / "bitnami" / "suitecrm"
    expected = os.lstat(volume / "custom" / "modules" / "logic_hooks.php")
    assert set(owners) == {
        str(volume / "config.php"),
        str(volume / "custom"),
        str(volume / "custom" / "modules"),
        str(volume / "custom" / "modules" / "logic_hooks.php"),
    }
    assert owners[str(volume / "custom" / "modules" / "logic_hooks.php")] == (
        expected.st_uid,
        expected.st_gid,
    )


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() != 0, reason="changing owners needs root"
)
def test_owner_and_group_survive_persist_and_restore(tmp_path, service, install_dir):
    for current_root, dirs, files in os.walk(install_dir):
        for name in dirs + files:
            os.lchown(os.path.join(current_root, name), 1, 0)

    service.persist("suitecrm", PATHS)
    fresh_image_layer(install_dir)
    service.restore("suitecrm", PATHS)

    for relative in ("config.php", "upload/note.txt", "custom/modules/logic_hooks.php"):
        stat = os.stat(install_dir / relative)
        assert (stat.st_uid, stat.st_gid) == (1, 0)
