"""
Incremental Agent Package

An agent that watches a filesystem root and keeps a bounded, exact record
of the paths that changed since the scanner last asked, so the scanner can
skip full tree walks.

Features:
- Net-effect merging of Created/Modified/Deleted per path
- Capacity bound with all-or-nothing overflow reset and a one-time flag
- Generation-based paging with acknowledgment-committed removal
- Self-change suppression to break scanner feedback loops
- watchdog adapter, FastAPI transport and httpx client
"""

from .models import (
    ChangeKind,
    OverflowReason,
    RecordOutcome,
    ChangeRecord,
    ChangeEvent,
    RawFSEvent,
    SnapshotHandle,
    Page,
    TrackerStats,
)

from .config import AgentConfig

from .exceptions import (
    AgentError,
    ProtocolError,
    BusyError,
    InvalidCursorError,
    InvalidStateError,
    AgentAlreadyRunningError,
    AgentAPIError,
)

from .self_change import SelfChangeFilter
from .recorder import ChangeRecorder, ChangeSet, merge_kind
from .overflow import OverflowController
from .snapshot import SnapshotProtocol, ProtocolState
from .tracker import ChangeTracker
from .fs_watcher import FSWatcher, FSEventHandler, decode_raw_event
from .process import AgentProcess
from .client import AgentClient


__all__ = [
    # Models
    "ChangeKind",
    "OverflowReason",
    "RecordOutcome",
    "ChangeRecord",
    "ChangeEvent",
    "RawFSEvent",
    "SnapshotHandle",
    "Page",
    "TrackerStats",
    # Config
    "AgentConfig",
    # Exceptions
    "AgentError",
    "ProtocolError",
    "BusyError",
    "InvalidCursorError",
    "InvalidStateError",
    "AgentAlreadyRunningError",
    "AgentAPIError",
    # Components
    "SelfChangeFilter",
    "ChangeRecorder",
    "ChangeSet",
    "merge_kind",
    "OverflowController",
    "SnapshotProtocol",
    "ProtocolState",
    "ChangeTracker",
    "FSWatcher",
    "FSEventHandler",
    "decode_raw_event",
    "AgentClient",
    # Main Process
    "AgentProcess",
]

__version__ = "0.1.0"
