"""Actionable error catalog for SuiteCRM bootstrap."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "empty_password": {
        "what": "The {env_var} environment variable is empty or not set.",
        "next": (
            "Set the environment variable ALLOW_EMPTY_PASSWORD=yes to allow a blank password. "
            "This is only recommended for development environments."
        ),
    },
    "database_unreachable": {
        "what": "Could not connect to the database at {host}:{port} after {attempts} attempt(s).",
        "next": "Check that the database is running and that the credentials are correct.",
    },
    "install_wizard_failed": {
        "what": "An error occurred while installing SuiteCRM.",
        "next": "Inspect {log_file} and the web server logs, then clean the volume and retry.",
    },
    "smtp_wizard_failed": {
        "what": "An error occurred configuring SMTP for SuiteCRM ({detail}).",
        "next": "Review the SUITECRM_SMTP_* settings or configure SMTP from the admin panel.",
    },
    "config_rebuild_failed": {
        "what": "Could not rebuild the SuiteCRM configuration file {path}.",
        "next": "Check that the provided database contains an existing SuiteCRM installation.",
    },
    "persisted_path_missing": {
        "what": "Cannot {action} '{path}' because it does not exist.",
        "next": "Check SUITECRM_DATA_TO_PERSIST and the contents of the mounted volume.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
