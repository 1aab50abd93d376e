"""siteclone - clone code, database and files between site environments."""

from importlib.metadata import PackageNotFoundError, version

from siteclone.clone import ClonePlanResult, clone
from siteclone.models import BackupRecord, CloneRequest, Element, SiteCloneError

try:
    __version__ = version("siteclone")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

__all__ = [
    "BackupRecord",
    "ClonePlanResult",
    "CloneRequest",
    "Element",
    "SiteCloneError",
    "clone",
    "__version__",
]
