"""Cross-chain status propagation for carbon-copy chains."""

from jobshare.sync.propagator import SYNC_FIELDS, StatusSyncPropagator, SyncResult

__all__ = [
    "SYNC_FIELDS",
    "StatusSyncPropagator",
    "SyncResult",
]
