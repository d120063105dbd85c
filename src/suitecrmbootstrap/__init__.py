"""
suitecrm-bootstrap - first-run setup and restore for SuiteCRM containers
"""

__version__ = "0.1.0"

from .core import BootstrapState, SuiteCRMBootstrap
from .errors import BootstrapError

__all__ = ["BootstrapError", "BootstrapState", "SuiteCRMBootstrap"]
