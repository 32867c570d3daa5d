"""Session store, signing coordinator and download gate."""

from .configuration import ConfigurationForm, parse_configuration
from .coordinator import SigningCoordinator
from .download import DownloadGate
from .session_store import SessionStore

__all__ = [
    "ConfigurationForm",
    "DownloadGate",
    "SessionStore",
    "SigningCoordinator",
    "parse_configuration",
]
