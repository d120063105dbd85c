import logging
import os

import click
from rich.logging import RichHandler

from .core import SuiteCRMBootstrap, console
from .errors import BootstrapError
from .models import Settings
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader, build_runtime_options
from .services.modules import ModuleInitializer, is_start_command
from .services.php_config import PhpConfigFile


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("suitecrmbootstrap")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    envvar="SUITECRM_BOOTSTRAP_CONFIG",
    help="Path to a YAML file with runtime options (paths, commands, retry budget).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, verbose, log_file):
    """Initialize or restore SuiteCRM inside its container."""
    try:
        config_values = ConfigLoader().load(config)
        options = build_runtime_options(config_values, os.environ)
    except (BootstrapError, ValueError, TypeError) as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    _configure_logging(verbose, log_file)

    ctx.obj = {
        "settings": Settings.from_environ(os.environ),
        "options": options,
    }


def _build_bootstrap(ctx) -> SuiteCRMBootstrap:
    return SuiteCRMBootstrap(settings=ctx.obj["settings"], options=ctx.obj["options"])


@main.command()
@click.pass_context
def setup(ctx):
    """Run first-time setup, or restore a persisted installation."""
    raise SystemExit(_build_bootstrap(ctx).run())


@main.command()
@click.pass_context
def validate(ctx):
    """Check SUITECRM_* settings and report every problem found."""
    try:
        _build_bootstrap(ctx).validate_settings()
    except BootstrapError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print("[green]Settings are valid.[/green]")


@main.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def entrypoint(ctx, args):
    """Container entrypoint: set up on start commands, then exec the supervisor with ARGS."""
    options = ctx.obj["options"]
    logger = logging.getLogger("suitecrmbootstrap")

    if is_start_command(args, options.start_commands):
        runner = CommandRunner(logger=logger)
        initializer = ModuleInitializer(
            logger=logger,
            console=console,
            setup_script=options.module_setup_script,
        )
        exit_code = initializer.initialize(
            options.pre_setup_modules,
            run_cmd=runner.run,
            bootstrap_app=_build_bootstrap(ctx).run,
        )
        if exit_code != 0:
            raise SystemExit(exit_code)
        logger.info("Starting application ...")

    command = list(options.supervisor_command) + list(args)
    try:
        os.execvp(command[0], command)
    except OSError as exc:
        raise click.ClickException(f"Could not execute {command[0]}: {exc}") from exc


_VALUE_TYPES = {
    "string": str,
    "int": int,
    "bool": lambda value: value.lower() in ("1", "yes", "true"),
}


@main.command("conf-get")
@click.argument("keys", nargs=-1, required=True)
@click.pass_context
def conf_get(ctx, keys):
    """Print a value from config.php, e.g. `conf-get dbconfig db_host_name`."""
    config_file = PhpConfigFile(ctx.obj["options"].conf_file)
    try:
        value = config_file.get(*keys)
    except BootstrapError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(value)


@main.command("conf-set")
@click.argument("keys", nargs=-1, required=True)
@click.argument("value")
@click.option(
    "--type",
    "value_type",
    type=click.Choice(sorted(_VALUE_TYPES)),
    default="string",
    show_default=True,
    help="How VALUE is written to the PHP file.",
)
@click.pass_context
def conf_set(ctx, keys, value, value_type):
    """Set a value in config.php, adding the key when it does not exist yet."""
    logger = logging.getLogger("suitecrmbootstrap")
    config_file = PhpConfigFile(ctx.obj["options"].conf_file, logger=logger)
    try:
        converted = _VALUE_TYPES[value_type](value)
    except ValueError as exc:
        raise click.ClickException(f"Invalid {value_type} value: {value}") from exc
    try:
        config_file.set(list(keys), converted)
    except BootstrapError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    main()
