"""Rebuild SuiteCRM's configuration through the application's own PHP routines."""

from typing import Callable

from suitecrmbootstrap.errors import BootstrapError, ConfigFileError, ConfigRebuildError
from suitecrmbootstrap.errors_catalog import actionable_error
from suitecrmbootstrap.services.php_config import PhpConfigFile

# Runs "Repair > Rebuild Config File" and "Rebuild .htaccess" from the admin
# panel. 'entryPoint.php' only works over HTTP, so its includes are listed here.
REBUILD_SCRIPT = """<?php
chdir('{base_dir}');
define('sugarEntry', true);
require_once('include/utils.php');

require_once('include/SugarLogger/LoggerManager.php');
require_once('sugar_version.php');
require_once('suitecrm_version.php');
require_once('include/TimeDate.php');
require_once('include/Localization/Localization.php');
require_once('include/SugarTheme/SugarTheme.php');
require_once('include/utils/LogicHook.php');
require_once('data/SugarBean.php');
require_once('include/SugarEmailAddress/SugarEmailAddress.php');
require_once('include/utils/file_utils.php');

$clean_config = loadCleanConfig();
rebuildConfigFile($clean_config, $sugar_version);

require_once 'include/upload_file.php';
UploadStream::register();
require('modules/Administration/UpgradeAccess.php');
"""


class ConfigFileRepairer:
    """Turns a minimal seed ``config.php`` into a complete one.

    Safe to run again on a complete configuration: SuiteCRM merges the clean
    defaults with the current values and writes the same file.
    """

    def __init__(self, base_dir: str, config_file: PhpConfigFile, php_bin: str, logger, console):
        self.base_dir = base_dir
        self.config_file = config_file
        self.php_bin = php_bin
        self.logger = logger
        self.console = console

    def build_script(self) -> str:
        return REBUILD_SCRIPT.format(base_dir=self.base_dir.replace("'", "\\'"))

    def rebuild(self, run_cmd: Callable):
        self.console.print("[blue]Rebuilding SuiteCRM configuration files...[/blue]")
        self.logger.info("Rebuilding SuiteCRM configuration file and access control files")

        failure = actionable_error("config_rebuild_failed", path=self.config_file.path)
        try:
            run_cmd([self.php_bin], check=True, capture_output=True, input_text=self.build_script())
        except BootstrapError as exc:
            raise ConfigRebuildError(f"{failure}\n{exc}") from exc

        if not self.config_file.exists():
            raise ConfigRebuildError(failure)
        try:
            self.config_file.get("dbconfig")
        except ConfigFileError as exc:
            raise ConfigRebuildError(f"{failure}\n{exc}") from exc
