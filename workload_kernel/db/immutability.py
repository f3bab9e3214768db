"""
ORM-Level Immutability Enforcement for formula snapshots and approved
billing records.

===============================================================================
PURPOSE
===============================================================================

A bill item's ``formula_details`` is a point-in-time audit record of which
formula and which inputs produced its amount.  Documents already exported
from a bill must stay reproducible, so:

  - every snapshot ever written is kept as a BillItemSnapshot row, and
    those rows are never updated or deleted through the ORM;
  - a BillItem's current ``formula_details`` may only be replaced together
    with a bump of ``snapshot_revision`` (i.e. by the billing service
    writing a NEW snapshot), never rewritten in place.

Approving a billing record locks the priced stitches and amounts it was
issued with; an approved record is neither repriced nor deleted.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The failing flush aborts the caller's transaction.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                     | Rule
------------------|------------------------------------|----------------------------
BillItemSnapshot  | ALWAYS (from creation)             | No UPDATE, no DELETE
BillItem          | formula_details, per revision      | Replace only with revision+1
BillingRateRecord | once is_approved has been flushed  | Priced fields frozen, no DELETE

===============================================================================
USAGE
===============================================================================

    from workload_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() does this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import attributes

from workload_kernel.exceptions import ImmutabilityViolationError
from workload_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_snapshot_update(mapper, connection, target):
    raise _blocked(
        "BillItemSnapshot",
        str(target.id),
        "UPDATE",
        "Formula snapshots are append-only and cannot be modified",
    )


def _check_snapshot_delete(mapper, connection, target):
    raise _blocked(
        "BillItemSnapshot",
        str(target.id),
        "DELETE",
        "Formula snapshots are append-only and cannot be deleted",
    )


def _check_bill_item_snapshot_rewrite(mapper, connection, target):
    """Reject an in-place rewrite of formula_details without a new revision."""
    details = attributes.get_history(target, "formula_details")
    if not details.has_changes():
        return

    revision = attributes.get_history(target, "snapshot_revision")
    old_revision = revision.deleted[0] if revision.deleted else None
    new_revision = target.snapshot_revision
    if old_revision is not None and new_revision > old_revision:
        return

    raise _blocked(
        "BillItem",
        str(target.id),
        "UPDATE",
        "formula_details can only be replaced by writing a new snapshot revision",
    )


BILLING_RECORD_FROZEN_FIELDS = (
    "total_stitches",
    "base_rate",
    "element_rates",
    "effective_rate",
    "total_amount",
    "is_approved",
    "approved_by",
    "approved_at",
)


def _was_approved(target) -> bool:
    history = attributes.get_history(target, "is_approved")
    if history.deleted:
        return bool(history.deleted[0])
    return bool(target.is_approved)


def _check_billing_record_update(mapper, connection, target):
    if not _was_approved(target):
        return
    changed = [
        name
        for name in BILLING_RECORD_FROZEN_FIELDS
        if attributes.get_history(target, name).has_changes()
    ]
    if changed:
        raise _blocked(
            "BillingRateRecord",
            str(target.id),
            "UPDATE",
            "Approved billing records cannot be modified: " + ", ".join(changed),
        )


def _check_billing_record_delete(mapper, connection, target):
    if _was_approved(target):
        raise _blocked(
            "BillingRateRecord",
            str(target.id),
            "DELETE",
            "Approved billing records cannot be deleted",
        )


_LISTENERS = (
    ("BillItemSnapshot", "before_update", _check_snapshot_update),
    ("BillItemSnapshot", "before_delete", _check_snapshot_delete),
    ("BillItem", "before_update", _check_bill_item_snapshot_rewrite),
    ("BillingRateRecord", "before_update", _check_billing_record_update),
    ("BillingRateRecord", "before_delete", _check_billing_record_delete),
)


def _models():
    from workload_kernel.models.billing import BillItem, BillItemSnapshot
    from workload_kernel.models.rates import BillingRateRecord

    return {
        "BillItem": BillItem,
        "BillItemSnapshot": BillItemSnapshot,
        "BillingRateRecord": BillingRateRecord,
    }


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    models = _models()
    for model_name, event_name, fn in _LISTENERS:
        _safe_remove_listener(models[model_name], event_name, fn)
