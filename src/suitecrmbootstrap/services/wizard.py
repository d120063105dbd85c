"""Headless driving of SuiteCRM's install and SMTP wizards over HTTP.

Success is judged by looking for marker strings in the HTML the application
returns. That is inherently brittle, so the matching lives in
``evaluate_markers`` and every request goes through ``WizardClient.attempt``,
which never raises: callers decide what a failed outcome means.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import requests

from suitecrmbootstrap.constants import INSTALL_SUCCESS_MARKER, SMTP_NOT_CONFIGURED_MARKER
from suitecrmbootstrap.errors import WizardError
from suitecrmbootstrap.errors_catalog import actionable_error
from suitecrmbootstrap.models import FailurePolicy, Settings

SMTP_PROTOCOL_CODES = {"ssl": "1", "tls": "2"}


def smtp_protocol_code(protocol: Optional[str]) -> str:
    """Map a protocol name to the ``mail_smtpssl`` code; unknown values mean no encryption."""
    return SMTP_PROTOCOL_CODES.get(protocol or "", "")


@dataclass(frozen=True)
class WizardStep:
    name: str
    path: str
    method: str = "GET"
    data: Dict[str, str] = field(default_factory=dict)
    required_markers: Sequence[str] = ()
    forbidden_markers: Sequence[str] = ()


@dataclass(frozen=True)
class WizardOutcome:
    step: str
    ok: bool
    message: str = ""
    body: str = ""


def evaluate_markers(
    step_name: str,
    body: str,
    required: Sequence[str] = (),
    forbidden: Sequence[str] = (),
) -> WizardOutcome:
    for marker in required:
        if marker not in body:
            return WizardOutcome(step_name, False, f"expected marker not found: {marker!r}", body)
    for marker in forbidden:
        if marker in body:
            return WizardOutcome(step_name, False, f"unexpected marker found: {marker!r}", body)
    return WizardOutcome(step_name, True, "", body)


class WizardClient:
    """Issues wizard requests against the local web server, keeping one cookie jar."""

    def __init__(
        self,
        base_url: str,
        logger,
        timeout: float = 60.0,
        verify_tls: bool = True,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.session = session or requests.Session()
        # Avoids the XSRF warning on form posts.
        self.session.headers.update({"Referer": "http://localhost"})

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def attempt(self, step: WizardStep) -> WizardOutcome:
        url = self.url_for(step.path)
        self.logger.debug("Wizard step '%s': %s %s", step.name, step.method, url)
        try:
            response = self.session.request(
                step.method,
                url,
                data=step.data or None,
                allow_redirects=True,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as exc:
            return WizardOutcome(step.name, False, f"request failed: {exc}")

        return evaluate_markers(
            step.name,
            response.text or "",
            required=step.required_markers,
            forbidden=step.forbidden_markers,
        )

    def close(self):
        self.session.close()


class InstallerDriver:
    """Completes SuiteCRM's first-run setup without a browser."""

    def __init__(
        self,
        settings: Settings,
        client: WizardClient,
        install_log: str,
        logger,
        console,
        policy: Optional[FailurePolicy] = None,
    ):
        self.settings = settings
        self.client = client
        self.install_log = install_log
        self.logger = logger
        self.console = console
        self.policy = policy or FailurePolicy()

    def install_step(self) -> WizardStep:
        return WizardStep(name="silent_install", path="install.php?goto=SilentInstall&cli=true")

    def login_step(self) -> WizardStep:
        return WizardStep(
            name="smtp_login",
            path="index.php?action=Login&module=Users",
            method="POST",
            data={
                "username_password": self.settings.password,
                "user_name": self.settings.username,
                "return_action": "Login",
                "module": "Users",
                "action": "Authenticate",
            },
            required_markers=(SMTP_NOT_CONFIGURED_MARKER,),
        )

    def smtp_config_step(self) -> WizardStep:
        settings = self.settings
        return WizardStep(
            name="smtp_config",
            path="index.php?module=EmailMan&action=config",
            method="POST",
            data={
                "mail_allowusersend": "0",
                "mail_sendtype": "SMTP",
                "mail_smtpauth_req": "1",
                "module": "EmailMan",
                "mail_smtppass": settings.smtp_password,
                "mail_smtpport": settings.smtp_port,
                "mail_smtpserver": settings.smtp_host,
                "mail_smtptype": "other",
                "mail_smtpuser": settings.smtp_user,
                "mail_smtpssl": smtp_protocol_code(settings.smtp_protocol),
                "notify_fromaddress": settings.smtp_notify_address,
                "notify_fromname": settings.smtp_notify_name,
                "action": "Save",
            },
            forbidden_markers=(SMTP_NOT_CONFIGURED_MARKER,),
        )

    def _read_install_log(self) -> str:
        try:
            with open(self.install_log, "r", encoding="utf-8", errors="replace") as file_obj:
                return file_obj.read()
        except OSError as exc:
            self.logger.debug("Could not read %s: %s", self.install_log, exc)
            return ""

    def pass_wizard(self) -> bool:
        self.console.print("[blue]Running SuiteCRM setup wizard...[/blue]")
        request_outcome = self.client.attempt(self.install_step())
        if not request_outcome.ok:
            self.logger.debug("Install request reported: %s", request_outcome.message)

        outcome = evaluate_markers(
            "silent_install",
            self._read_install_log(),
            required=(INSTALL_SUCCESS_MARKER,),
        )
        if outcome.ok:
            self.logger.info("Setup wizard finished successfully")
            return True

        message = actionable_error("install_wizard_failed", log_file=self.install_log)
        if self.policy.install_wizard_fatal:
            raise WizardError(message)
        self.logger.error(message)
        return False

    def pass_smtp_wizard(self) -> bool:
        self.logger.info("Configuring SMTP")
        for step in (self.login_step(), self.smtp_config_step()):
            outcome = self.client.attempt(step)
            if outcome.ok:
                continue

            detail = f"step '{outcome.step}': {outcome.message}"
            if step.name == "smtp_login":
                detail = f"login failed, {detail}"
            message = actionable_error("smtp_wizard_failed", detail=detail)
            if self.policy.smtp_wizard_fatal:
                raise WizardError(message)
            self.logger.error(message)
            return False

        self.logger.info("SMTP configured successfully")
        return True
