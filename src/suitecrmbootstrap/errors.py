"""Domain errors for SuiteCRM bootstrap."""

from typing import List


class BootstrapError(RuntimeError):
    """Raised when the bootstrap cannot continue safely."""


class ValidationError(BootstrapError):
    """One or more settings violate their constraints."""

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__(
            f"{len(self.violations)} setting(s) failed validation: " + "; ".join(self.violations)
        )


class ConnectivityError(BootstrapError):
    """The database did not answer within the retry budget."""


class WizardError(BootstrapError):
    """An install or SMTP wizard request produced an unexpected response."""


class ConfigRebuildError(BootstrapError):
    """The application's configuration rebuild routine failed."""


class ConfigFileError(BootstrapError):
    """The PHP configuration file could not be read or written."""


class PersistenceError(BootstrapError):
    """Application state could not be copied to or from the volume."""
