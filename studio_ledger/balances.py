"""
Balance Accumulator

The `balance` field on customer and supplier documents is a cache of the
net sum of every money movement affecting the entity. It is only changed by
an atomic storage increment keyed by entity id, never by a fetch-then-save.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .errors import ConsistencyError, NotFoundError
from .ledger import EntityKind
from .logging_config import get_logger, log_action

T = TypeVar("T")


class BalanceAccumulator:
    """Atomic balance adjustments for customers and suppliers"""

    field_name = "balance"

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 rollback_retries: int = 3):
        self.storage = storage
        self.audit_trail = audit_trail
        self.rollback_retries = rollback_retries
        self.logger = get_logger("studio_ledger.balances")

    def increment(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        delta: Decimal,
        reason: str,
        related_id: Optional[str] = None,
        event_type: AuditEventType = AuditEventType.BALANCE_ADJUSTED
    ) -> Dict[str, Any]:
        """
        Add delta to the entity's balance

        Args:
            entity_kind: customer or supplier
            entity_id: ID of the entity
            delta: Signed amount; positive increases what the entity owes
            reason: Short tag stored with the audit event (journal, booking_created, ...)
            related_id: Posting, booking or purchase that caused the change
            event_type: Audit event to record (BALANCE_ROLLED_BACK for compensations)

        Returns:
            The updated entity document

        Raises:
            NotFoundError: if the entity does not exist
        """
        updated = self.storage.increment(entity_kind.table_name, entity_id, self.field_name, delta)
        if updated is None:
            raise NotFoundError(entity_kind.value, entity_id)

        log_action(
            self.logger, "info", f"Balance adjusted by {delta} ({reason})",
            action="increment_balance", resource=f"{entity_kind.value}:{entity_id}",
            entity_kind=entity_kind.value, entity_id=entity_id,
            extra={"delta": str(delta), "balance": updated.get(self.field_name),
                   "reason": reason, "related_id": related_id}
        )

        self.audit_trail.log_event(
            event_type=event_type,
            entity_type=entity_kind.value,
            entity_id=entity_id,
            metadata={
                "delta": delta,
                "balance": updated.get(self.field_name),
                "reason": reason,
                "related_id": related_id
            }
        )
        return updated

    def get_balance(self, entity_kind: EntityKind, entity_id: str) -> Decimal:
        """
        Current cached balance

        Raises:
            NotFoundError: if the entity does not exist
        """
        data = self.storage.load(entity_kind.table_name, entity_id)
        if data is None:
            raise NotFoundError(entity_kind.value, entity_id)
        return Decimal(str(data.get(self.field_name) or "0"))

    @contextmanager
    def unit_of_work(self):
        """
        storage.atomic() that also resyncs the audit chain head when a
        transactional backend rolls the block back

        Nested blocks leave the resync to the outermost one.
        """
        outermost = False
        try:
            with self.storage.atomic():
                outermost = self.storage.atomic_depth == 1
                yield
        except Exception:
            if outermost and self.storage.supports_transactions:
                # audit events written in the block were rolled back with it
                self.audit_trail.resync()
            raise

    def apply_with(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        delta: Decimal,
        reason: str,
        write: Callable[[], T],
        related_id: Optional[str] = None
    ) -> Tuple[T, Dict[str, Any]]:
        """
        Increment the balance, then perform the matching record write

        Runs inside unit_of_work(). If write() raises, the increment is
        undone by a compensating increment (retried up to rollback_retries
        times; transactional backends also roll back) and the original
        error propagates. A zero delta skips the balance entirely.

        Returns:
            (result of write(), updated entity document or None for a zero delta)

        Raises:
            NotFoundError: if the entity does not exist (nothing is written)
            ConsistencyError: if the compensating increment could not be applied
        """
        with self.unit_of_work():
            updated = None
            if delta:
                updated = self.increment(entity_kind, entity_id, delta, reason, related_id=related_id)
            try:
                result = write()
            except Exception as e:
                if delta:
                    self._compensate(entity_kind, entity_id, delta, reason, related_id, e)
                raise
        return result, updated

    def _compensate(self, entity_kind: EntityKind, entity_id: str, delta: Decimal,
                    reason: str, related_id: Optional[str], cause: Exception) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, max(1, self.rollback_retries) + 1):
            try:
                self.increment(entity_kind, entity_id, -delta, f"rollback:{reason}",
                               related_id=related_id,
                               event_type=AuditEventType.BALANCE_ROLLED_BACK)
                log_action(
                    self.logger, "warning", f"Balance change rolled back after failed write: {cause}",
                    action="rollback_balance", resource=f"{entity_kind.value}:{entity_id}",
                    entity_kind=entity_kind.value, entity_id=entity_id,
                    extra={"delta": str(delta), "attempt": attempt, "reason": reason}
                )
                return
            except Exception as e:
                last_error = e
                log_action(
                    self.logger, "error", f"Balance rollback attempt {attempt} failed: {e}",
                    action="rollback_balance", resource=f"{entity_kind.value}:{entity_id}",
                    entity_kind=entity_kind.value, entity_id=entity_id,
                    extra={"delta": str(delta), "attempt": attempt, "reason": reason}
                )
        raise ConsistencyError(
            f"Balance of {entity_kind.value} {entity_id} was changed by {delta} "
            f"but the matching {reason} record was not written and the change "
            f"could not be rolled back"
        ) from last_error
