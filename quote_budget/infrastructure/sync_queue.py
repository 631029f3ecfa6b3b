"""
Offline Sync Queue - Operations waiting for connectivity.

Saves issued while the store is unreachable are appended here and
replayed in order once the gateway is back online. The queue is kept in a
local JSON file so pending work survives a restart.
"""
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

SYNC_OPERATIONS = ("insert", "update", "delete")


@dataclass
class PendingSync:
    """
    One queued operation.

    Attributes:
        id: Queue entry id
        type: Kind of record ('budget', 'work_budget', ...)
        operation: 'insert', 'update' or 'delete'
        data: Payload needed to replay the operation
        timestamp: Enqueue time, seconds since the epoch
    """

    type: str
    operation: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PendingSync":
        return cls(
            id=str(data.get('id') or uuid4()),
            type=str(data.get('type', '')),
            operation=str(data.get('operation', '')),
            data=data.get('data') if isinstance(data.get('data'), dict) else {},
            timestamp=float(data.get('timestamp') or 0.0),
        )


@dataclass
class SyncStatus:
    """Snapshot of the queue for sync indicators."""

    is_online: bool
    pending_syncs: int
    is_syncing: bool

    def to_dict(self) -> dict:
        return {
            'isOnline': self.is_online,
            'pendingSyncs': self.pending_syncs,
            'isSyncing': self.is_syncing,
        }


StatusListener = Callable[[SyncStatus], None]
SyncHandler = Callable[[PendingSync], None]


class OfflineSyncQueue:
    """
    Persistent FIFO of operations to replay when back online.

    Args:
        path: JSON file backing the queue; None keeps it in memory only
        is_online: Initial connectivity
    """

    def __init__(self, path: Optional[Path] = None, is_online: bool = True):
        self.path = Path(path) if path is not None else None
        self.is_online = is_online
        self.is_syncing = False
        self._pending: List[PendingSync] = self._load()
        self._listeners: List[StatusListener] = []
        self._lock = threading.RLock()

    # =========================================================================
    # Storage
    # =========================================================================

    def _load(self) -> List[PendingSync]:
        if self.path is None or not self.path.exists():
            return []
        try:
            with self.path.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Could not read sync queue {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Sync queue {self.path} is not a list, starting empty")
            return []
        return [PendingSync.from_dict(entry) for entry in data if isinstance(entry, dict)]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open('w', encoding='utf-8') as handle:
            json.dump([sync.to_dict() for sync in self._pending], handle, indent=2)

    # =========================================================================
    # Queue operations
    # =========================================================================

    def add(self, sync_type: str, operation: str, data: Dict[str, Any]) -> PendingSync:
        """
        Append an operation to the queue.

        Args:
            sync_type: Kind of record
            operation: 'insert', 'update' or 'delete'
            data: Replay payload (must be JSON serializable)

        Returns:
            The queued entry
        """
        if operation not in SYNC_OPERATIONS:
            raise ValueError(f"Unknown sync operation: {operation}")
        sync = PendingSync(type=sync_type, operation=operation, data=data)
        with self._lock:
            self._pending.append(sync)
            self._save()
        logger.info(f"Queued {sync_type} {operation} ({len(self._pending)} pending)")
        self._notify()
        return sync

    def pending(self) -> List[PendingSync]:
        """Queued operations in replay order."""
        with self._lock:
            return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def set_online(self, online: bool) -> None:
        """Record connectivity and notify listeners."""
        self.is_online = online
        self._notify()

    def flush(self, handler: SyncHandler) -> int:
        """
        Replay queued operations in order.

        Entries whose handler raises stay queued for the next flush.

        Args:
            handler: Callable replaying one entry

        Returns:
            Number of entries replayed successfully
        """
        with self._lock:
            if not self.is_online or not self._pending:
                return 0

            self.is_syncing = True
            self._notify()
            failed: List[PendingSync] = []
            try:
                for sync in self._pending:
                    try:
                        handler(sync)
                    except Exception as e:
                        logger.error(f"Failed to sync {sync.type} {sync.operation} ({sync.id}): {e}")
                        failed.append(sync)
                replayed = len(self._pending) - len(failed)
                self._pending = failed
                self._save()
            finally:
                self.is_syncing = False

        logger.info(f"Sync queue flushed: {replayed} replayed, {len(failed)} still pending")
        self._notify()
        return replayed

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> SyncStatus:
        """Current sync status."""
        return SyncStatus(
            is_online=self.is_online,
            pending_syncs=len(self._pending),
            is_syncing=self.is_syncing,
        )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """
        Register a listener called on every status change.

        Returns:
            Callable that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Sync status listener failed")
