import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict

from app.logic.exceptions import PersistenceError

logger = logging.getLogger(__name__)

EXPENSE_LOCK_TIMEOUT_SECONDS = float(os.getenv("EXPENSE_LOCK_TIMEOUT_SECONDS", "10"))


class ExpenseLockRegistry:
    """Per-expense mutual exclusion for the approval critical section.

    One lock per expense id, created on demand and dropped once nobody holds
    or waits for it. Different expenses never contend. The database row lock
    taken inside the section covers multi-process deployments.
    """

    def __init__(self, timeout: float = EXPENSE_LOCK_TIMEOUT_SECONDS):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._waiters: Dict[int, int] = {}

    @contextmanager
    def hold(self, expense_id: int):
        with self._guard:
            lock = self._locks.setdefault(expense_id, threading.Lock())
            self._waiters[expense_id] = self._waiters.get(expense_id, 0) + 1

        acquired = lock.acquire(timeout=self.timeout)
        try:
            if not acquired:
                logger.error(f"Timed out after {self.timeout}s waiting for the lock on expense {expense_id}")
                raise PersistenceError(f"Expense {expense_id} is busy, try again")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                self._waiters[expense_id] -= 1
                if self._waiters[expense_id] == 0:
                    del self._waiters[expense_id]
                    del self._locks[expense_id]

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)


expense_locks = ExpenseLockRegistry()
