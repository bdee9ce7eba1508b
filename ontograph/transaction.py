import inspect
from enum import Enum
from typing import Any, Callable, List

from .errors import TransactionError


class TransactionStatus(Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


async def _call(fn: Callable) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class Transaction:
    """Unit of work over the in-process mappers.

    Mappers write immediately and register an undo step with
    ``add_rollback``; ``rollback`` replays the undo steps in reverse order.
    """

    def __init__(self):
        self._status = TransactionStatus.ACTIVE
        self._rollback_operations: List[Callable] = []

    @property
    def status(self) -> TransactionStatus:
        return self._status

    @property
    def active(self) -> bool:
        return self._status == TransactionStatus.ACTIVE

    def add_rollback(self, rollback: Callable) -> None:
        if self._status != TransactionStatus.ACTIVE:
            raise TransactionError("Cannot add operations to a non-active transaction")
        self._rollback_operations.append(rollback)

    async def commit(self) -> None:
        if self._status != TransactionStatus.ACTIVE:
            raise TransactionError("Cannot commit a non-active transaction")
        self._rollback_operations = []
        self._status = TransactionStatus.COMMITTED

    async def rollback(self) -> None:
        if self._status != TransactionStatus.ACTIVE:
            raise TransactionError("Cannot rollback a non-active transaction")

        try:
            for rollback_op in reversed(self._rollback_operations):
                await _call(rollback_op)
            self._status = TransactionStatus.ROLLED_BACK
        except Exception as e:
            self._status = TransactionStatus.FAILED
            raise TransactionError(f"Rollback failed: {str(e)}")
        finally:
            self._rollback_operations = []
