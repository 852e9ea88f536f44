"""mobsession: join or start a shared mob programming session on a WIP branch."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("mobsession")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .classifier import Scenario, classify  # noqa: F401
from .config_schema import MobConfig  # noqa: F401
from .orchestrator import SessionResult, StartTask, start_session  # noqa: F401

__all__ = [
    "MobConfig",
    "Scenario",
    "SessionResult",
    "StartTask",
    "classify",
    "start_session",
    "__version__",
]
