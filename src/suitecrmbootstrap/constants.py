"""Shared constants for SuiteCRM bootstrap."""

APP_NAME = "suitecrm"

DIR_MODE = 0o775
FILE_MODE = 0o664

BITNAMI_ROOT_DIR = "/opt/bitnami"
DEFAULT_BASE_DIR = f"{BITNAMI_ROOT_DIR}/suitecrm"
DEFAULT_VOLUME_ROOT = "/bitnami"
DEFAULT_PHP_BIN_DIR = f"{BITNAMI_ROOT_DIR}/php/bin"
DEFAULT_DATA_TO_PERSIST = (
    "config.php",
    "config_override.php",
    "custom",
    "modules",
    "upload",
    "themes",
    ".htaccess",
)

SUGAR_CONFIG_VARIABLE = "sugar_config"
SILENT_INSTALL_VARIABLE = "sugar_config_si"

INSTALL_SUCCESS_MARKER = "Save user settings"
SMTP_NOT_CONFIGURED_MARKER = "an SMTP server must be configured"

CRON_SCHEDULE = "*/1 * * * *"
