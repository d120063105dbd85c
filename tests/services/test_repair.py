import subprocess

import pytest

from suitecrmbootstrap.errors import BootstrapError, ConfigRebuildError
from suitecrmbootstrap.models import DatabaseEndpoint
from suitecrmbootstrap.services.php_config import PhpConfigFile, build_db_seed_config
from suitecrmbootstrap.services.repair import ConfigFileRepairer


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


CLEAN_DEFAULTS = {
    "cache_dir": "cache/",
    "default_max_tabs": 10,
    "verify_client_ip": True,
    "dbconfig": {"db_type": "mysql", "db_manager": "MysqliManager"},
}


class FakePhp:
    """Mimics SuiteCRM's rebuild: clean defaults merged under the current values."""

    def __init__(self, config_file: PhpConfigFile):
        self.config_file = config_file
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, **kwargs):
        self.calls.append((cmd, kwargs))
        current = self.config_file.load().get("sugar_config", {})
        merged = dict(CLEAN_DEFAULTS)
        for key, value in current.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        self.config_file.write({"sugar_config": merged})
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def _repairer(tmp_path):
    config_file = PhpConfigFile(str(tmp_path / "config.php"))
    repairer = ConfigFileRepairer(
        base_dir=str(tmp_path),
        config_file=config_file,
        php_bin="/opt/bitnami/php/bin/php",
        logger=DummyLogger(),
        console=DummyConsole(),
    )
    return repairer, config_file


def _seed(config_file):
    endpoint = DatabaseEndpoint(host="db", port="3306", name="crm", user="crm", password="pw")
    config_file.write(build_db_seed_config(endpoint))


def test_build_script_changes_into_base_dir():
    repairer = ConfigFileRepairer(
        base_dir="/opt/bitnami/suitecrm",
        config_file=PhpConfigFile("/opt/bitnami/suitecrm/config.php"),
        php_bin="php",
        logger=DummyLogger(),
        console=DummyConsole(),
    )

    script = repairer.build_script()

    assert script.startswith("<?php\nchdir('/opt/bitnami/suitecrm');")
    assert "rebuildConfigFile($clean_config, $sugar_version);" in script
    assert "modules/Administration/UpgradeAccess.php" in script


def test_rebuild_feeds_script_to_php_and_checks_result(tmp_path):
    repairer, config_file = _repairer(tmp_path)
    _seed(config_file)
    run_cmd = FakePhp(config_file)

    repairer.rebuild(run_cmd)

    cmd, kwargs = run_cmd.calls[0]
    assert cmd == ["/opt/bitnami/php/bin/php"]
    assert kwargs["input_text"] == repairer.build_script()
    assert config_file.get("dbconfig", "db_host_name") == "db"
    assert config_file.get("default_max_tabs") == 10


def test_rebuild_is_idempotent(tmp_path):
    repairer, config_file = _repairer(tmp_path)
    _seed(config_file)
    run_cmd = FakePhp(config_file)

    repairer.rebuild(run_cmd)
    first = (tmp_path / "config.php").read_bytes()
    repairer.rebuild(run_cmd)

    assert (tmp_path / "config.php").read_bytes() == first


def test_rebuild_wraps_command_failure(tmp_path):
    repairer, config_file = _repairer(tmp_path)
    _seed(config_file)

    def failing_php(cmd, **_kwargs):
        raise BootstrapError("Command failed (255): PHP Fatal error")

    with pytest.raises(ConfigRebuildError, match="PHP Fatal error"):
        repairer.rebuild(failing_php)


def test_rebuild_fails_when_config_is_missing_afterwards(tmp_path):
    repairer, _config_file = _repairer(tmp_path)

    def silent_php(cmd, **_kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    with pytest.raises(ConfigRebuildError, match="Could not rebuild"):
        repairer.rebuild(silent_php)


def test_rebuild_fails_when_dbconfig_is_gone(tmp_path):
    repairer, config_file = _repairer(tmp_path)

    def truncating_php(cmd, **_kwargs):
        config_file.write({"sugar_config": {"cache_dir": "cache/"}})
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    with pytest.raises(ConfigRebuildError, match="dbconfig"):
        repairer.rebuild(truncating_php)
