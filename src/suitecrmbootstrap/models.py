"""Shared domain models for SuiteCRM bootstrap."""

import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .constants import (
    APP_NAME,
    DEFAULT_BASE_DIR,
    DEFAULT_DATA_TO_PERSIST,
    DEFAULT_PHP_BIN_DIR,
    DEFAULT_VOLUME_ROOT,
)

_BOOLEAN_YES = re.compile(r"^(1|yes|true)$", re.IGNORECASE)
_TRUE_FALSE = re.compile(r"^(true|false)$", re.IGNORECASE)
_BOOLEAN = re.compile(r"^(1|0|yes|no|true|false)$", re.IGNORECASE)


def is_empty_value(value: Optional[str]) -> bool:
    return value is None or value == ""


def is_boolean_yes(value: Optional[str]) -> bool:
    return bool(value) and _BOOLEAN_YES.match(value) is not None


def is_true_false_value(value: Optional[str]) -> bool:
    return bool(value) and _TRUE_FALSE.match(value) is not None


def is_boolean_value(value: Optional[str]) -> bool:
    """yes/no, true/false or 1/0, in any case."""
    return bool(value) and _BOOLEAN.match(value) is not None


@dataclass(frozen=True)
class DatabaseEndpoint:
    """Connection parameters used to probe the database."""

    host: str
    port: str
    name: str
    user: str
    password: str = ""


@dataclass(frozen=True)
class Settings:
    """Operator-supplied settings, read once from the environment."""

    username: str = "user"
    password: str = "bitnami"
    email: str = "user@example.com"
    last_name: str = "Name"
    host: str = "localhost"
    enable_https: str = "no"
    validate_user_ip: str = "true"
    skip_bootstrap: str = "no"
    allow_empty_password: str = "no"
    http_port: str = "80"
    https_port: str = "443"
    smtp_host: str = ""
    smtp_port: str = ""
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_protocol: str = ""
    smtp_notify_name: str = ""
    smtp_notify_address: str = ""
    database_host: str = "mariadb"
    database_port: str = "3306"
    database_name: str = "bitnami_suitecrm"
    database_user: str = "bn_suitecrm"
    database_password: str = ""

    ENV_VARS = {
        "username": "SUITECRM_USERNAME",
        "password": "SUITECRM_PASSWORD",
        "email": "SUITECRM_EMAIL",
        "last_name": "SUITECRM_LAST_NAME",
        "host": "SUITECRM_HOST",
        "enable_https": "SUITECRM_ENABLE_HTTPS",
        "validate_user_ip": "SUITECRM_VALIDATE_USER_IP",
        "skip_bootstrap": "SUITECRM_SKIP_BOOTSTRAP",
        "allow_empty_password": "ALLOW_EMPTY_PASSWORD",
        "http_port": "APACHE_HTTP_PORT_NUMBER",
        "https_port": "APACHE_HTTPS_PORT_NUMBER",
        "smtp_host": "SUITECRM_SMTP_HOST",
        "smtp_port": "SUITECRM_SMTP_PORT_NUMBER",
        "smtp_user": "SUITECRM_SMTP_USER",
        "smtp_password": "SUITECRM_SMTP_PASSWORD",
        "smtp_protocol": "SUITECRM_SMTP_PROTOCOL",
        "smtp_notify_name": "SUITECRM_SMTP_NOTIFY_NAME",
        "smtp_notify_address": "SUITECRM_SMTP_NOTIFY_ADDRESS",
        "database_host": "SUITECRM_DATABASE_HOST",
        "database_port": "SUITECRM_DATABASE_PORT_NUMBER",
        "database_name": "SUITECRM_DATABASE_NAME",
        "database_user": "SUITECRM_DATABASE_USER",
        "database_password": "SUITECRM_DATABASE_PASSWORD",
    }
    ENV_ALIASES = {
        "smtp_port": "SUITECRM_SMTP_PORT",
    }

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "Settings":
        values = {}
        for attr, env_var in cls.ENV_VARS.items():
            if env_var in environ:
                values[attr] = environ[env_var]
            elif attr in cls.ENV_ALIASES and cls.ENV_ALIASES[attr] in environ:
                values[attr] = environ[cls.ENV_ALIASES[attr]]
        return cls(**values)

    def env_name(self, attr: str) -> str:
        return self.ENV_VARS[attr]

    @property
    def https_enabled(self) -> bool:
        return is_boolean_yes(self.enable_https)

    @property
    def url_protocol(self) -> str:
        return "https" if self.https_enabled else "http"

    @property
    def web_port(self) -> str:
        return self.https_port if self.https_enabled else self.http_port

    @property
    def smtp_enabled(self) -> bool:
        return not is_empty_value(self.smtp_host)

    def database_endpoint(self) -> DatabaseEndpoint:
        return DatabaseEndpoint(
            host=self.database_host,
            port=self.database_port,
            name=self.database_name,
            user=self.database_user,
            password=self.database_password,
        )


@dataclass(frozen=True)
class FailurePolicy:
    """Which wizard failures abort initialization."""

    install_wizard_fatal: bool = True
    smtp_wizard_fatal: bool = False


@dataclass(frozen=True)
class RuntimeOptions:
    """Filesystem layout and collaborator commands."""

    app_name: str = APP_NAME
    base_dir: str = DEFAULT_BASE_DIR
    conf_file: str = f"{DEFAULT_BASE_DIR}/config.php"
    silent_install_conf_file: str = f"{DEFAULT_BASE_DIR}/config_si.php"
    volume_root: str = DEFAULT_VOLUME_ROOT
    data_to_persist: Tuple[str, ...] = DEFAULT_DATA_TO_PERSIST
    php_bin: str = f"{DEFAULT_PHP_BIN_DIR}/php"
    mysql_bin: str = "mysql"
    web_server_start_command: Tuple[str, ...] = ("/opt/bitnami/scripts/apache/start.sh",)
    web_server_stop_command: Tuple[str, ...] = ("/opt/bitnami/scripts/apache/stop.sh",)
    web_server_validate_command: Tuple[str, ...] = ()
    supervisor_command: Tuple[str, ...] = ("/entrypoint.sh",)
    start_commands: Tuple[Tuple[str, ...], ...] = (
        ("nami", "start"),
        ("/init.sh",),
        ("/opt/bitnami/scripts/suitecrm/run.sh",),
    )
    pre_setup_modules: Tuple[str, ...] = ("apache", "php")
    module_setup_script: str = "/opt/bitnami/scripts/{module}/setup.sh"
    cron_dir: str = "/etc/cron.d"
    daemon_user: str = "daemon"
    daemon_group: str = "root"
    db_max_retries: int = 12
    db_retry_sleep_seconds: float = 5.0
    http_timeout: float = 60.0
    verify_tls: bool = True
    failure_policy: FailurePolicy = field(default_factory=FailurePolicy)

    @property
    def volume_dir(self) -> str:
        return f"{self.volume_root.rstrip('/')}/{self.app_name}"

    @property
    def install_log(self) -> str:
        return f"{self.base_dir.rstrip('/')}/install.log"
