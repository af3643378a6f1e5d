"""Package installation and lifecycle scripts."""

from .lifecycle import DEFAULT_SCRIPTS, Lifecycle
from .orchestrator import Installer

__all__ = ["DEFAULT_SCRIPTS", "Installer", "Lifecycle"]
