"""Merge resolver: applies one confirmed duplicate pair to the store.

Steps, in order:

1. Rejection check (symmetric, by natural key or id)
2. Lookup of both records (missing or inactive => ``not_found``)
3. Survivor selection and fill-gaps fusion
4. Survivor update
5. Dependent-row reassignment, table by table
6. Hard delete of the loser, falling back to a soft delete when a
   foreign key still references it

Dry-run mode stops after building the plan; the decision trace is the
same as in execute mode.
"""

from catalogdq.audit.logger import AuditLogger
from catalogdq.candidates.models import DuplicateCandidate
from catalogdq.candidates.rejection import RejectionSet
from catalogdq.merge.field_merge import fuse_fields
from catalogdq.merge.models import SOFT_DELETE_ANNOTATION, MergeOutcome, MergeStatus
from catalogdq.merge.survivor import select_survivor
from catalogdq.models import Record
from catalogdq.store.base import RecordStore
from catalogdq.store.errors import (
    ForeignKeyViolation,
    MissingColumnError,
    RecordNotFoundError,
    StoreError,
)

__all__ = ["MergeResolver"]


class MergeResolver:
    """Resolves candidate pairs against a record store.

    Parameters
    ----------
    store : RecordStore
        Store handle used for lookups and writes.
    rejections : RejectionSet | None, optional
        Pairs that must never be merged.
    logger : AuditLogger | None, optional
        Audit logger for write failures.
    """

    def __init__(
        self,
        store: RecordStore,
        rejections: RejectionSet | None = None,
        logger: AuditLogger | None = None,
    ) -> None:
        self.store = store
        self.rejections = rejections if rejections is not None else RejectionSet()
        self.logger = logger

    def resolve(self, candidate: DuplicateCandidate, execute: bool = False) -> MergeOutcome:
        """Plan, and in execute mode apply, the merge of one pair.

        Store errors are captured in the returned outcome; this method
        does not raise for lookup, update, reassignment or delete failures.
        """
        outcome = MergeOutcome(pair_id=candidate.pair_id, status=MergeStatus.PLANNED)

        if self.rejections.blocks(candidate):
            return self._rejected(outcome)

        records = self._lookup(candidate, outcome)
        if records is None:
            return outcome
        record_a, record_b = records

        if self.rejections.is_rejected(record_a.natural_key, record_b.natural_key):
            return self._rejected(outcome)

        survivor, loser, reason = select_survivor(record_a, record_b)
        outcome.survivor_id = survivor.id
        outcome.loser_id = loser.id
        outcome.trace.append(f"keep {survivor.id}, remove {loser.id} ({reason})")

        changes, provenance = fuse_fields(survivor, loser)
        outcome.fields_filled = sorted(changes)
        outcome.provenance = provenance
        for name in outcome.fields_filled:
            outcome.trace.append(f"fill {name} on {survivor.id} from {loser.id}")

        dependent_tables = survivor.schema.dependent_tables
        for dep in dependent_tables:
            outcome.trace.append(
                f"reassign {dep.table}.{dep.column} from {loser.id} to {survivor.id}"
            )
        outcome.trace.append(f"delete {loser.id} (soft delete if still referenced)")

        if not execute:
            return outcome

        # Survivor first: if this fails nothing else has been touched
        if changes:
            try:
                self.store.update(survivor.id, changes)
            except StoreError as e:
                return self._failed(outcome, "update_failed", e)

        for dep in dependent_tables:
            key = f"{dep.table}.{dep.column}"
            try:
                outcome.reassigned[key] = self.store.reassign(
                    dep.table, dep.column, loser.id, survivor.id
                )
            except MissingColumnError:
                outcome.skipped_tables.append(dep.table)
            except StoreError as e:
                outcome.reassignment_errors.append(f"{key}: {e}")
                if self.logger:
                    self.logger.error(type(e).__name__, str(e), rid=candidate.pair_id)

        try:
            self.store.delete(loser.id)
            outcome.status = MergeStatus.MERGED
        except ForeignKeyViolation as e:
            try:
                self.store.update(loser.id, {"is_active": False})
            except StoreError as soft_error:
                outcome.message = f"{e}; {soft_error}"
                return self._failed(outcome, "soft_delete_failed", soft_error)
            outcome.status = MergeStatus.MERGED_SOFT_DELETED
            outcome.annotations.append(SOFT_DELETE_ANNOTATION)
            outcome.message = str(e)
        except RecordNotFoundError as e:
            outcome.status = MergeStatus.NOT_FOUND
            outcome.reason = "record_not_found"
            outcome.message = str(e)
            return outcome
        except StoreError as e:
            return self._failed(outcome, "delete_failed", e)

        if outcome.reassignment_errors:
            outcome.reason = "reassignment_errors"
        elif outcome.skipped_tables:
            outcome.reason = "missing_column"
        return outcome

    def _lookup(
        self, candidate: DuplicateCandidate, outcome: MergeOutcome
    ) -> tuple[Record, Record] | None:
        found: list[Record] = []
        for record_id in (candidate.record_a_id, candidate.record_b_id):
            try:
                record = self.store.get(record_id)
            except RecordNotFoundError as e:
                outcome.message = str(e)
                break
            if not record.is_active:
                outcome.message = f"record inactive: {record_id}"
                break
            found.append(record)

        if len(found) != 2:
            outcome.status = MergeStatus.NOT_FOUND
            outcome.reason = "record_not_found"
            outcome.trace.append(outcome.message or "record not found")
            return None
        return found[0], found[1]

    def _rejected(self, outcome: MergeOutcome) -> MergeOutcome:
        outcome.status = MergeStatus.REJECTED
        outcome.reason = "rejection_list"
        outcome.trace.append("pair is on the rejection list")
        return outcome

    def _failed(self, outcome: MergeOutcome, reason: str, error: StoreError) -> MergeOutcome:
        outcome.status = MergeStatus.FAILED
        outcome.reason = reason
        if outcome.message is None:
            outcome.message = str(error)
        if self.logger:
            self.logger.error(type(error).__name__, outcome.message, rid=outcome.pair_id)
        return outcome
