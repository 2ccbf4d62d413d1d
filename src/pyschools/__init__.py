"""pyschools - Async reconciliation of a Supabase-backed school list."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyschools")
except PackageNotFoundError:
    __version__ = "0+local"
from pyschools.client import SchoolsClient
from pyschools.config import SchoolsConfig
from pyschools.engine import EngineState, ReconciliationEngine
from pyschools.exceptions import (
    FetchError,
    MutationError,
    SchoolsApiError,
    SchoolsConfigError,
    SchoolsError,
    SchoolsTransportError,
    SubscriptionError,
)
from pyschools.models import (
    ChangeKind,
    RecordCreated,
    RecordDeleted,
    RecordUpdated,
    School,
    parse_change_payload,
)
from pyschools.state.signal import ReadonlySignal, Signal
from pyschools.store import RecordStore

__all__ = [
    "__version__",
    "ChangeKind",
    "EngineState",
    "FetchError",
    "MutationError",
    "ReadonlySignal",
    "ReconciliationEngine",
    "RecordCreated",
    "RecordDeleted",
    "RecordStore",
    "RecordUpdated",
    "School",
    "SchoolsApiError",
    "SchoolsClient",
    "SchoolsConfig",
    "SchoolsConfigError",
    "SchoolsError",
    "SchoolsTransportError",
    "Signal",
    "SubscriptionError",
    "parse_change_payload",
]
