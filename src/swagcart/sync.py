"""Cross-tab reconciliation.

Reacts to storage changes written by other tabs.  Incoming payloads are
only used to decide *whether* to reconcile; the new state always comes
from a full validated :meth:`PersistenceAdapter.load`, and is installed
with :meth:`CartStore.replace`.  The reconciling tab never writes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from swagcart.models.cart import CartLine
from swagcart.persistence import PersistenceAdapter
from swagcart.storage import StorageBackend, StorageEvent
from swagcart.store import CartStore, ChangeSource

_logger = logging.getLogger(__name__)

ReconcileCallback = Callable[[tuple[CartLine, ...]], None]


class CrossTabSync:
    def __init__(
        self,
        storage: StorageBackend,
        adapter: PersistenceAdapter,
        store: CartStore,
        *,
        on_reconcile: ReconcileCallback | None = None,
    ) -> None:
        self._storage = storage
        self._adapter = adapter
        self._store = store
        self._on_reconcile = on_reconcile
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self._storage.subscribe(self.handle_event)

    def stop(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    def handle_event(self, event: StorageEvent) -> bool:
        """Reconcile after an external storage change.

        Returns ``True`` when local state was replaced.
        """
        if self._unsubscribe is None:
            return False
        if event.key is not None and event.key != self._adapter.key:
            return False

        incoming = tuple(self._adapter.parse(event.new_value))
        if incoming == self._store.items:
            _logger.debug("Storage change from %s matches local cart; nothing to do", event.origin)
            return False

        # The other tab's snapshot supersedes anything this tab has not yet written.
        self._adapter.cancel()
        lines = self._adapter.load()
        self._store.replace(lines, source=ChangeSource.SYNC)
        _logger.debug("Reconciled cart from %s: %d line(s), count=%d", event.origin, len(lines), self._store.count)

        if self._on_reconcile is not None:
            try:
                self._on_reconcile(self._store.items)
            except Exception:
                _logger.warning("Reconcile callback failed", exc_info=True)
        return True
