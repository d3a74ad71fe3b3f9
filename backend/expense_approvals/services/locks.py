"""Per-expense mutual exclusion.

Two approvers deciding on the same expense must not interleave their
read → recompute → write. Inside one process the registry below serialises
them; across processes the ``SELECT ... FOR UPDATE`` taken by the approval
service on the expense row does the same job (PostgreSQL), and the version
columns catch anything that still slips through.
"""
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from expense_approvals.core.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)


class ExpenseLockRegistry:
    """Hands out one ``threading.Lock`` per expense id.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of expenses seen.
    """

    def __init__(self, timeout: float | None = None):
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, list] = {}  # id -> [lock, refcount]
        self._timeout = timeout

    @contextmanager
    def hold(self, expense_id: uuid.UUID) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(expense_id, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        acquired = lock.acquire(timeout=self._timeout) if self._timeout else lock.acquire()
        try:
            if not acquired:
                logger.warning("Lock wait on expense %s exceeded %ss", expense_id, self._timeout)
                raise ConcurrentModificationError(
                    f"Timed out waiting for the lock on expense {expense_id}."
                )
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(expense_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every request handler in this process
expense_locks = ExpenseLockRegistry()
