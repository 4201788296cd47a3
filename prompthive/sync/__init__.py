"""
Synchronization of local artifact histories with a remote registry.
"""

from .transport import (
    RegistryTransport,
    HttpRegistryTransport,
    InMemoryRegistry,
    PushResponse,
    PullResponse,
)

from .coordinator import (
    SyncCoordinator,
    SyncStateKind,
    SyncStatus,
    PushResult,
    PullResult,
    ReconcileResult,
)

__all__ = [
    # Transport
    "RegistryTransport",
    "HttpRegistryTransport",
    "InMemoryRegistry",
    "PushResponse",
    "PullResponse",
    # Coordinator
    "SyncCoordinator",
    "SyncStateKind",
    "SyncStatus",
    "PushResult",
    "PullResult",
    "ReconcileResult",
]
