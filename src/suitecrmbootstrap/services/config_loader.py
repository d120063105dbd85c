"""Configuration loader for SuiteCRM bootstrap runtime options."""

import shlex
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from suitecrmbootstrap.errors import BootstrapError
from suitecrmbootstrap.models import FailurePolicy, RuntimeOptions, is_boolean_yes

_LIST_KEYS = {"data_to_persist", "pre_setup_modules"}
_COMMAND_KEYS = {
    "web_server_start_command",
    "web_server_stop_command",
    "web_server_validate_command",
    "supervisor_command",
}

_ENV_OVERRIDES = {
    "SUITECRM_BASE_DIR": "base_dir",
    "SUITECRM_VOLUME_DIR": "volume_dir",
    "SUITECRM_DATA_TO_PERSIST": "data_to_persist",
    "PHP_BIN_DIR": "php_bin_dir",
    "WEB_SERVER_DAEMON_USER": "daemon_user",
    "WEB_SERVER_DAEMON_GROUP": "daemon_group",
}


def parse_path_list(value) -> tuple:
    """Split a Bitnami-style list (``,``, ``;``, ``:`` or whitespace separated)."""
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    text = str(value or "")
    for separator in ",;:":
        text = text.replace(separator, " ")
    return tuple(text.split())


def parse_flag(value) -> bool:
    """YAML booleans as-is; strings follow the ``1|yes|true`` convention."""
    if isinstance(value, bool):
        return value
    return is_boolean_yes(str(value).strip())


def parse_command(value) -> tuple:
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return tuple(shlex.split(str(value or "")))


class ConfigLoader:
    """Loads YAML configuration files for runtime options."""

    SUPPORTED_KEYS = {
        "base_dir",
        "conf_file",
        "silent_install_conf_file",
        "volume_root",
        "volume_dir",
        "data_to_persist",
        "php_bin",
        "php_bin_dir",
        "mysql_bin",
        "web_server_start_command",
        "web_server_stop_command",
        "web_server_validate_command",
        "supervisor_command",
        "start_commands",
        "pre_setup_modules",
        "module_setup_script",
        "cron_dir",
        "daemon_user",
        "daemon_group",
        "db_max_retries",
        "db_retry_sleep_seconds",
        "http_timeout",
        "verify_tls",
        "install_wizard_fatal",
        "smtp_wizard_fatal",
        "verbose",
        "log_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise BootstrapError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise BootstrapError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise BootstrapError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise BootstrapError(f"Unknown configuration keys: {unknown_list}")

        return parsed


def build_runtime_options(config: Mapping[str, Any], environ: Mapping[str, str]) -> RuntimeOptions:
    """Resolve runtime options: YAML values win over environment overrides, which win over defaults."""
    values: Dict[str, Any] = {}
    for env_var, key in _ENV_OVERRIDES.items():
        if environ.get(env_var):
            values[key] = environ[env_var]
    values.update(config)
    values.pop("verbose", None)
    values.pop("log_file", None)

    base_dir = str(values.pop("base_dir", RuntimeOptions.base_dir)).rstrip("/")
    options: Dict[str, Any] = {
        "base_dir": base_dir,
        "conf_file": values.pop("conf_file", f"{base_dir}/config.php"),
        "silent_install_conf_file": values.pop(
            "silent_install_conf_file", f"{base_dir}/config_si.php"
        ),
    }

    volume_dir = values.pop("volume_dir", None)
    if volume_dir:
        volume_path = Path(str(volume_dir))
        options["volume_root"] = str(volume_path.parent)
        options["app_name"] = volume_path.name

    php_bin_dir = values.pop("php_bin_dir", None)
    if php_bin_dir and "php_bin" not in values:
        options["php_bin"] = f"{str(php_bin_dir).rstrip('/')}/php"

    if "start_commands" in values:
        options["start_commands"] = tuple(
            parse_command(command) for command in values.pop("start_commands") or ()
        )

    policy = FailurePolicy(
        install_wizard_fatal=parse_flag(values.pop("install_wizard_fatal", True)),
        smtp_wizard_fatal=parse_flag(values.pop("smtp_wizard_fatal", False)),
    )
    options["failure_policy"] = policy

    for key, value in values.items():
        if key in _LIST_KEYS:
            options[key] = parse_path_list(value)
        elif key in _COMMAND_KEYS:
            options[key] = parse_command(value)
        elif key == "db_max_retries":
            options[key] = int(value)
        elif key in {"db_retry_sleep_seconds", "http_timeout"}:
            options[key] = float(value)
        elif key == "verify_tls":
            options[key] = parse_flag(value)
        else:
            options[key] = str(value)

    return RuntimeOptions(**options)
