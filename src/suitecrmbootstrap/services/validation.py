"""Validation of SuiteCRM settings."""

from typing import Callable, List, Optional

from suitecrmbootstrap.errors import ValidationError
from suitecrmbootstrap.errors_catalog import actionable_error
from suitecrmbootstrap.models import (
    Settings,
    is_boolean_value,
    is_boolean_yes,
    is_empty_value,
    is_true_false_value,
)


class SettingsValidator:
    """Checks settings and reports every violation, not just the first one."""

    CREDENTIAL_FIELDS = ("database_password", "password")
    SMTP_REQUIRED_FIELDS = (
        "smtp_user",
        "smtp_password",
        "smtp_port",
        "smtp_notify_name",
        "smtp_notify_address",
    )
    SMTP_PROTOCOLS = ("ssl", "tls")

    def __init__(self, logger, web_server_validate: Optional[Callable[[], bool]] = None):
        self.logger = logger
        self.web_server_validate = web_server_validate

    def collect_violations(self, settings: Settings) -> List[str]:
        violations: List[str] = []

        def check_yes_no(attr: str):
            value = getattr(settings, attr)
            if not is_boolean_value(value):
                violations.append(f"The allowed values for {settings.env_name(attr)} are: yes no")

        def check_true_false(attr: str):
            if not is_true_false_value(getattr(settings, attr)):
                violations.append(
                    f"The allowed values for {settings.env_name(attr)} are [true, false]"
                )

        def check_multi_value(attr: str, allowed):
            if getattr(settings, attr) not in allowed:
                violations.append(
                    f"The allowed values for {settings.env_name(attr)} are: {' '.join(allowed)}"
                )

        if not is_empty_value(settings.validate_user_ip):
            check_true_false("validate_user_ip")
        check_yes_no("enable_https")
        check_yes_no("skip_bootstrap")

        if is_boolean_yes(settings.allow_empty_password):
            self.logger.warning(
                "You set the environment variable ALLOW_EMPTY_PASSWORD=%s. For safety reasons, "
                "do not use this flag in a production environment.",
                settings.allow_empty_password,
            )
        else:
            for attr in self.CREDENTIAL_FIELDS:
                if is_empty_value(getattr(settings, attr)):
                    violations.append(
                        actionable_error("empty_password", env_var=settings.env_name(attr))
                    )

        if settings.smtp_enabled:
            for attr in self.SMTP_REQUIRED_FIELDS:
                if is_empty_value(getattr(settings, attr)):
                    violations.append(
                        f"The {settings.env_name(attr)} environment variable is empty or not set."
                    )
            if not is_empty_value(settings.smtp_protocol):
                check_multi_value("smtp_protocol", self.SMTP_PROTOCOLS)

        if self.web_server_validate is not None and not self.web_server_validate():
            violations.append("Web server validation failed")

        return violations

    def validate(self, settings: Settings):
        self.logger.debug("Validating settings in SUITECRM_* environment variables...")
        violations = self.collect_violations(settings)
        for violation in violations:
            self.logger.error(violation)
        if violations:
            raise ValidationError(violations)
