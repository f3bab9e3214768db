"""
Typed Exception Hierarchy for the Workload Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (route handlers, batch jobs, tests) must be able to tell a bad
request from a broken data layer without parsing messages:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        billing.add_item(bill, item)
    except Exception as e:
        if "rate" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way (what this module enables):
    try:
        billing.add_item(bill, item)
    except InvalidRateInputError as e:
        api_response(code=e.code, field=e.field)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WorkloadError:

    WorkloadError (base)
    |
    +-- ValidationError                 rejected before persistence, not retried
    |   +-- InvalidRateInputError
    |   +-- UnknownRateTypeError
    |   +-- InvalidAssignmentError
    |   +-- DuplicateProductionEntryError
    |   +-- InvalidProductionEntryError
    |   +-- InvalidBillError
    |   +-- InvalidRateElementError
    |
    +-- DataIntegrityError              explicit domain errors, never swallowed
    |   +-- AllocationNotFoundError
    |   +-- WorkItemNotFoundError
    |   +-- MachineNotFoundError
    |   +-- ProductionEntryNotFoundError
    |   +-- BillNotFoundError
    |   +-- BillItemNotFoundError
    |   +-- OutsourcedWorkNotFoundError
    |   +-- OverReceiptError
    |   +-- BaseRateNotFoundError
    |   +-- RateElementNotFoundError
    |   +-- BillingRecordNotFoundError
    |
    +-- ConcurrencyError                surfaced to the caller for retry
    |   +-- BillNumberCollisionError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError
        +-- BillingRecordApprovedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_RATE_INPUT          | Missing/non-positive quantity or rate
                | UNKNOWN_RATE_TYPE           | Rate type outside the closed enum
                | INVALID_ASSIGNMENT          | Negative or duplicate machine assignment
                | DUPLICATE_PRODUCTION_ENTRY  | Same machine/item/date logged twice
                | INVALID_PRODUCTION_ENTRY    | Negative, non-finite stitches or unknown field
                | INVALID_BILL                | Missing party name or unknown header field
                | INVALID_RATE_ELEMENT        | Blank name or negative/non-finite rate
----------------|-----------------------------|-----------------------------------------
Integrity       | ALLOCATION_NOT_FOUND        | Strict recalculation without allocation
                | WORK_ITEM_NOT_FOUND         | Work item ID doesn't exist
                | MACHINE_NOT_FOUND           | Machine ID doesn't exist
                | PRODUCTION_ENTRY_NOT_FOUND  | Production event ID doesn't exist
                | BILL_NOT_FOUND              | Bill ID doesn't exist
                | BILL_ITEM_NOT_FOUND         | Bill item ID doesn't exist
                | OUTSOURCED_WORK_NOT_FOUND   | Outsourced work item doesn't exist
                | OVER_RECEIPT                | Received more than was sent
                | BASE_RATE_NOT_FOUND         | No active base rate covers the date
                | RATE_ELEMENT_NOT_FOUND      | Rate element ID doesn't exist
                | BILLING_RECORD_NOT_FOUND    | Billing record ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Concurrency     | BILL_NUMBER_COLLISION       | Could not allocate a free bill number
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only snapshot row
                | BILLING_RECORD_APPROVED     | Recalculating or re-approving an approved record

Overproduction is NOT an error: it is the Overproduced allocation status.
"""


class WorkloadError(Exception):
    """
    Base exception for all workload kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "WORKLOAD_ERROR"


# Validation errors


class ValidationError(WorkloadError):
    """Base exception for input that is rejected before persistence."""

    code: str = "VALIDATION_ERROR"


class InvalidRateInputError(ValidationError):
    """A quantity input required by a rate formula is missing or invalid."""

    code: str = "INVALID_RATE_INPUT"

    def __init__(self, rate_type: str, field: str, reason: str):
        self.rate_type = rate_type
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid input '{field}' for {rate_type}: {reason}")


class UnknownRateTypeError(ValidationError):
    """Rate type is not one of the supported formulas."""

    code: str = "UNKNOWN_RATE_TYPE"

    def __init__(self, rate_type: str):
        self.rate_type = rate_type
        super().__init__(f"Unknown rate type: {rate_type}")


class InvalidAssignmentError(ValidationError):
    """A machine assignment cannot be persisted."""

    code: str = "INVALID_ASSIGNMENT"

    def __init__(self, work_item_id: str, machine_id: str, reason: str):
        self.work_item_id = work_item_id
        self.machine_id = machine_id
        self.reason = reason
        super().__init__(
            f"Invalid assignment of work item {work_item_id} "
            f"to machine {machine_id}: {reason}"
        )


class DuplicateProductionEntryError(ValidationError):
    """A daily production entry already exists for this key and date."""

    code: str = "DUPLICATE_PRODUCTION_ENTRY"

    def __init__(self, machine_id: str, work_item_id: str | None, production_date: str):
        self.machine_id = machine_id
        self.work_item_id = work_item_id
        self.production_date = production_date
        super().__init__(
            f"Daily production already logged for machine {machine_id}, "
            f"work item {work_item_id} on {production_date}"
        )


class InvalidProductionEntryError(ValidationError):
    """A production event carries an invalid value."""

    code: str = "INVALID_PRODUCTION_ENTRY"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid production entry field '{field}': {reason}")


class InvalidBillError(ValidationError):
    """A bill header value is missing or cannot be set."""

    code: str = "INVALID_BILL"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid bill field '{field}': {reason}")


class InvalidRateElementError(ValidationError):
    """A base rate or rate element carries an invalid value."""

    code: str = "INVALID_RATE_ELEMENT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid rate element field '{field}': {reason}")


# Integrity errors


class DataIntegrityError(WorkloadError):
    """Base exception for missing or inconsistent domain records."""

    code: str = "DATA_INTEGRITY_ERROR"


class AllocationNotFoundError(DataIntegrityError):
    """No allocation exists for the (work item, machine) pair."""

    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(self, work_item_id: str, machine_id: str):
        self.work_item_id = work_item_id
        self.machine_id = machine_id
        super().__init__(
            f"No allocation for work item {work_item_id} on machine {machine_id}"
        )


class WorkItemNotFoundError(DataIntegrityError):
    """Work item with given ID was not found."""

    code: str = "WORK_ITEM_NOT_FOUND"

    def __init__(self, work_item_id: str):
        self.work_item_id = work_item_id
        super().__init__(f"Work item not found: {work_item_id}")


class MachineNotFoundError(DataIntegrityError):
    """Machine with given ID was not found."""

    code: str = "MACHINE_NOT_FOUND"

    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine not found: {machine_id}")


class ProductionEntryNotFoundError(DataIntegrityError):
    """Production event with given ID was not found."""

    code: str = "PRODUCTION_ENTRY_NOT_FOUND"

    def __init__(self, source: str, entry_id: str):
        self.source = source
        self.entry_id = entry_id
        super().__init__(f"{source} entry not found: {entry_id}")


class BillNotFoundError(DataIntegrityError):
    """Bill with given ID was not found."""

    code: str = "BILL_NOT_FOUND"

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Bill not found: {bill_id}")


class BillItemNotFoundError(DataIntegrityError):
    """Bill item with given ID was not found."""

    code: str = "BILL_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Bill item not found: {item_id}")


class OutsourcedWorkNotFoundError(DataIntegrityError):
    """Outsourced work item with given ID was not found."""

    code: str = "OUTSOURCED_WORK_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Outsourced work item not found: {item_id}")


class OverReceiptError(DataIntegrityError):
    """More quantity received back than was sent out."""

    code: str = "OVER_RECEIPT"

    def __init__(self, item_id: str, sent: str, already_received: str, receiving: str):
        self.item_id = item_id
        self.sent = sent
        self.already_received = already_received
        self.receiving = receiving
        super().__init__(
            f"Cannot receive more than sent for {item_id}. Sent: {sent}, "
            f"already received: {already_received}, new: {receiving}"
        )


class BaseRateNotFoundError(DataIntegrityError):
    """No active base rate is effective on the requested date."""

    code: str = "BASE_RATE_NOT_FOUND"

    def __init__(self, on_date: str):
        self.on_date = on_date
        super().__init__(f"No active base rate effective on {on_date}")


class RateElementNotFoundError(DataIntegrityError):
    """Rate element with given ID was not found."""

    code: str = "RATE_ELEMENT_NOT_FOUND"

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__(f"Rate element not found: {element_id}")


class BillingRecordNotFoundError(DataIntegrityError):
    """Billing record with given ID was not found."""

    code: str = "BILLING_RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Billing record not found: {record_id}")


# Concurrency errors


class ConcurrencyError(WorkloadError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class BillNumberCollisionError(ConcurrencyError):
    """Every candidate bill number in the scope was already taken."""

    code: str = "BILL_NUMBER_COLLISION"

    def __init__(self, scope: str, attempts: int):
        self.scope = scope
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a free bill number in scope {scope} "
            f"after {attempts} attempts"
        )


# Immutability errors


class ImmutabilityError(WorkloadError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class BillingRecordApprovedError(ImmutabilityError):
    """An approved billing record cannot be recalculated or approved again."""

    code: str = "BILLING_RECORD_APPROVED"

    def __init__(self, record_id: str, action: str):
        self.record_id = record_id
        self.action = action
        super().__init__(f"Billing record {record_id} is approved; cannot {action}")
