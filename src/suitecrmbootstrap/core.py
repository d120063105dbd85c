import logging
import subprocess
from enum import Enum
from typing import List, Optional

from rich.console import Console

from .constants import DIR_MODE, FILE_MODE, SILENT_INSTALL_VARIABLE
from .errors import BootstrapError, ConfigFileError
from .models import DatabaseEndpoint, RuntimeOptions, Settings, is_boolean_yes
from .services.command_runner import CommandRunner
from .services.cron import CronService
from .services.database import DatabaseWaiter
from .services.filesystem import FileSystemService
from .services.persistence import PersistenceService
from .services.php_config import PhpConfigFile, build_db_seed_config, build_silent_install_config
from .services.repair import ConfigFileRepairer
from .services.validation import SettingsValidator
from .services.web_server import WebServerService
from .services.wizard import InstallerDriver, WizardClient

console = Console()
logger = logging.getLogger("suitecrmbootstrap")


class BootstrapState(str, Enum):
    FRESH = "fresh"
    RESTORING = "restoring"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class SuiteCRMBootstrap:
    """Brings a SuiteCRM container to a runnable state on start.

    A volume without the initialization marker goes through first-run setup
    (silent install wizard, or a configuration rebuild against an existing
    database) and is then persisted; a volume with the marker is restored and
    only the database connection is checked.
    """

    def __init__(self, settings: Settings, options: Optional[RuntimeOptions] = None):
        self.settings = settings
        self.options = options or RuntimeOptions()
        self.state: Optional[BootstrapState] = None
        self.state_history: List[BootstrapState] = []

        self.command_runner = CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.web_server_service = WebServerService(
            logger=logger,
            console=console,
            start_command=self.options.web_server_start_command,
            stop_command=self.options.web_server_stop_command,
            validate_command=self.options.web_server_validate_command,
        )
        self.validator = SettingsValidator(logger=logger, web_server_validate=self.validate_web_server)
        self.database_waiter = DatabaseWaiter(
            logger=logger,
            console=console,
            mysql_bin=self.options.mysql_bin,
            max_retries=self.options.db_max_retries,
            sleep_seconds=self.options.db_retry_sleep_seconds,
        )
        self.config_file = PhpConfigFile(self.options.conf_file, logger=logger)
        self.silent_install_file = PhpConfigFile(
            self.options.silent_install_conf_file,
            variable=SILENT_INSTALL_VARIABLE,
            logger=logger,
        )
        self.persistence_service = PersistenceService(
            volume_root=self.options.volume_root,
            install_dir=self.options.base_dir,
            logger=logger,
        )
        self.repairer = ConfigFileRepairer(
            base_dir=self.options.base_dir,
            config_file=self.config_file,
            php_bin=self.options.php_bin,
            logger=logger,
            console=console,
        )
        self.cron_service = CronService(cron_dir=self.options.cron_dir, logger=logger)

    def _transition(self, state: BootstrapState):
        logger.debug("Bootstrap state: %s", state.value)
        self.state = state
        self.state_history.append(state)

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    @property
    def app_name(self) -> str:
        return self.options.app_name

    def validate_web_server(self) -> bool:
        return self.web_server_service.validate(self._run_cmd)

    def validate_settings(self):
        self.validator.validate(self.settings)

    def is_initialized(self) -> bool:
        return self.persistence_service.is_initialized(self.app_name)

    def _fix_ownership(self, path: str):
        if not self.filesystem_service.am_i_root():
            return
        self.filesystem_service.configure_permissions_ownership(
            path,
            dir_mode=DIR_MODE,
            file_mode=FILE_MODE,
            user=self.options.daemon_user,
            group=self.options.daemon_group,
        )

    def prepare_volume(self):
        logger.info("Ensuring SuiteCRM directories exist")
        self.filesystem_service.ensure_dir(self.options.volume_dir)
        self._fix_ownership(self.options.volume_dir)

    def wait_for_db(self, endpoint: DatabaseEndpoint):
        self.database_waiter.wait(endpoint, self._run_cmd)

    def build_installer(self) -> InstallerDriver:
        base_url = f"{self.settings.url_protocol}://{self.settings.host}:{self.settings.web_port}"
        client = WizardClient(
            base_url=base_url,
            logger=logger,
            timeout=self.options.http_timeout,
            verify_tls=self.options.verify_tls,
        )
        return InstallerDriver(
            settings=self.settings,
            client=client,
            install_log=self.options.install_log,
            logger=logger,
            console=console,
            policy=self.options.failure_policy,
        )

    def run_install_wizard(self):
        self.silent_install_file.write(build_silent_install_config(self.settings))
        try:
            self.web_server_service.start(self._run_cmd)
            installer = self.build_installer()
            try:
                installer.pass_wizard()
                if self.settings.smtp_enabled:
                    installer.pass_smtp_wizard()
            finally:
                installer.client.close()
                self.web_server_service.stop(self._run_cmd)
        finally:
            # Holds the admin and database passwords.
            self.filesystem_service.remove_file(self.options.silent_install_conf_file)

    def configure_existing_database(self, endpoint: DatabaseEndpoint):
        logger.info("An already initialized SuiteCRM database was provided, configuration will be skipped")
        logger.info("Generating SuiteCRM configuration file")
        self.config_file.write(build_db_seed_config(endpoint))
        self._fix_ownership(self.options.conf_file)
        self.repairer.rebuild(self._run_cmd)

    def apply_runtime_config(self):
        if not self.config_file.exists():
            logger.warning("SuiteCRM configuration file %s not found", self.options.conf_file)
            return
        self.config_file.set(
            ["verify_client_ip"], is_boolean_yes(self.settings.validate_user_ip)
        )

    def initialize_app(self):
        endpoint = self.settings.database_endpoint()
        self.wait_for_db(endpoint)

        if is_boolean_yes(self.settings.skip_bootstrap):
            self.configure_existing_database(endpoint)
        else:
            self.run_install_wizard()

        self.apply_runtime_config()
        logger.info("Persisting SuiteCRM installation")
        self.persistence_service.persist(self.app_name, self.options.data_to_persist)

    def restored_database_endpoint(self) -> DatabaseEndpoint:
        dbconfig = self.config_file.get("dbconfig")
        if not isinstance(dbconfig, dict):
            raise ConfigFileError(f"Invalid 'dbconfig' section in {self.options.conf_file}.")

        def value(key: str, default: str = "") -> str:
            raw = dbconfig.get(key)
            return default if raw is None or raw == "" else str(raw)

        return DatabaseEndpoint(
            host=value("db_host_name"),
            port=value("db_port", "3306"),
            name=value("db_name"),
            user=value("db_user_name"),
            password=value("db_password"),
        )

    def restore_app(self):
        logger.info("Restoring persisted SuiteCRM installation")
        self.persistence_service.restore(self.app_name, self.options.data_to_persist)
        self.wait_for_db(self.restored_database_endpoint())

    def configure_cron(self):
        if not self.filesystem_service.am_i_root():
            logger.warning("Skipping cron configuration for SuiteCRM because of running as a non-root user")
            return

        command = f"cd {self.options.base_dir}; {self.options.php_bin} -f cron.php > /dev/null 2>&1"
        try:
            self.cron_service.generate(self.app_name, command, run_as=self.options.daemon_user)
        except OSError as exc:
            logger.warning("Could not configure cron for SuiteCRM: %s", exc)

    def run(self) -> int:
        try:
            logger.info("Starting SuiteCRM bootstrap...")
            self.validate_settings()

            if self.is_initialized():
                self._transition(BootstrapState.RESTORING)
                self.restore_app()
            else:
                self._transition(BootstrapState.FRESH)
                self.prepare_volume()
                self._transition(BootstrapState.INITIALIZING)
                self.initialize_app()

            self._transition(BootstrapState.READY)
            self.configure_cron()
            console.print("[bold green]SuiteCRM is ready.[/bold green]")
            return 0

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            self._transition(BootstrapState.FAILED)
            return 1
        except BootstrapError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            self._transition(BootstrapState.FAILED)
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            self._transition(BootstrapState.FAILED)
            return 1
