"""Mutation results consumed by the invalidation planner.

Each successful data-service mutation is described by exactly one of the
frozen variants below. They carry only the identifiers needed to work out
which cached queries went stale.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from spendwise.domain.models import (
    Category,
    CategoryKind,
    DeleteOutcome,
    Loan,
    Partition,
    Transaction,
    TransactionChanges,
)


class ChangeKind(Enum):
    """What happened to an account, partition or category."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ARCHIVED = "archived"  # Hidden; still referenced by transactions


@dataclass(frozen=True, slots=True)
class PartitionRef:
    """A partition together with its owning account."""

    partition_id: str
    account_id: str


@dataclass(frozen=True, slots=True)
class CategoryRef:
    """A category together with its kind."""

    category_id: str
    kind: CategoryKind


@dataclass(frozen=True, slots=True)
class LoanRef:
    """A loan together with the partition that lent the funds."""

    loan_id: str
    lender_partition_id: str


@dataclass(frozen=True, slots=True)
class TransactionCreated:
    owner_id: str
    transaction_id: str
    category: CategoryRef
    source: PartitionRef
    counterpart: Optional[PartitionRef] = None
    loan: Optional[LoanRef] = None


@dataclass(frozen=True, slots=True)
class TransactionUpdated:
    """A transaction was edited.

    The previous_* fields are set when the edit moved the transaction to
    another category or partition; the old and the new one are then stale.
    """

    owner_id: str
    transaction_id: str
    category: CategoryRef
    source: PartitionRef
    counterpart: Optional[PartitionRef] = None
    loan: Optional[LoanRef] = None
    previous_category: Optional[CategoryRef] = None
    previous_source: Optional[PartitionRef] = None
    previous_counterpart: Optional[PartitionRef] = None


@dataclass(frozen=True, slots=True)
class TransactionDeleted:
    """A transaction was deleted.

    deleted_loan_id is set when an unpaid loan was deleted along with its
    origin transaction.
    """

    owner_id: str
    transaction_id: str
    category: CategoryRef
    source: PartitionRef
    counterpart: Optional[PartitionRef] = None
    loan: Optional[LoanRef] = None
    deleted_loan_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LoanCreated:
    owner_id: str
    transaction_id: str
    loan_id: str
    category: CategoryRef
    lender: PartitionRef
    borrower: PartitionRef


@dataclass(frozen=True, slots=True)
class LoanPaymentMade:
    """A payment from the borrower back to the lender of a loan."""

    owner_id: str
    transaction_id: str
    loan_id: str
    category: CategoryRef
    lender: PartitionRef
    borrower: PartitionRef


@dataclass(frozen=True, slots=True)
class PartitionChanged:
    """A partition was created, renamed, made private/public, deleted or archived."""

    owner_id: str
    partition: PartitionRef
    change: ChangeKind = ChangeKind.UPDATED


@dataclass(frozen=True, slots=True)
class CategoryChanged:
    owner_id: str
    category: CategoryRef
    change: ChangeKind = ChangeKind.UPDATED


@dataclass(frozen=True, slots=True)
class AccountChanged:
    owner_id: str
    account_id: str
    change: ChangeKind = ChangeKind.UPDATED


@dataclass(frozen=True, slots=True)
class BudgetProfileToggled:
    """Budget amounts of a profile changed for the given categories."""

    owner_id: str
    profile_id: str
    category_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BudgetProfileCreated:
    owner_id: str
    profile_id: str


MutationResult = Union[
    TransactionCreated,
    TransactionUpdated,
    TransactionDeleted,
    LoanCreated,
    LoanPaymentMade,
    PartitionChanged,
    CategoryChanged,
    AccountChanged,
    BudgetProfileToggled,
    BudgetProfileCreated,
]


def partition_ref(partition: Partition) -> PartitionRef:
    return PartitionRef(partition_id=partition.id, account_id=partition.account_id)


def category_ref(category: Category) -> CategoryRef:
    return CategoryRef(category_id=category.id, kind=category.kind)


def _optional_partition_ref(partition: Optional[Partition]) -> Optional[PartitionRef]:
    return partition_ref(partition) if partition is not None else None


def _loan_ref(transaction: Transaction) -> Optional[LoanRef]:
    if transaction.loan is None:
        return None
    return LoanRef(
        loan_id=transaction.loan.loan_id,
        lender_partition_id=transaction.loan.lender_partition_id,
    )


def transaction_created(owner_id: str, transaction: Transaction) -> TransactionCreated:
    """Describe a freshly created transaction."""
    return TransactionCreated(
        owner_id=owner_id,
        transaction_id=transaction.id,
        category=category_ref(transaction.category),
        source=partition_ref(transaction.source_partition),
        counterpart=_optional_partition_ref(transaction.counterpart_partition),
        loan=_loan_ref(transaction),
    )


def transaction_updated(
    owner_id: str,
    transaction: Transaction,
    changes: Optional[TransactionChanges] = None,
) -> TransactionUpdated:
    """Describe an edit of transaction.

    Args:
        owner_id: User who owns the session
        transaction: The transaction as it was before the edit
        changes: The applied changes; only category and partition matter

    Returns:
        TransactionUpdated scoped to where the transaction ends up, with the
        category and partitions it left
    """
    changes = changes or TransactionChanges()
    category = transaction.category
    source = transaction.source_partition
    counterpart = transaction.counterpart_partition
    previous_category = previous_source = previous_counterpart = None

    if changes.category is not None and changes.category.id != category.id:
        previous_category = category_ref(category)
        category = changes.category

    moved = changes.partition
    if moved is not None and changes.on_counterpart:
        if counterpart is not None and moved.id != counterpart.id:
            previous_counterpart = partition_ref(counterpart)
            counterpart = moved
    elif moved is not None and moved.id != source.id:
        previous_source = partition_ref(source)
        source = moved

    return TransactionUpdated(
        owner_id=owner_id,
        transaction_id=transaction.id,
        category=category_ref(category),
        source=partition_ref(source),
        counterpart=_optional_partition_ref(counterpart),
        loan=_loan_ref(transaction),
        previous_category=previous_category,
        previous_source=previous_source,
        previous_counterpart=previous_counterpart,
    )


def transaction_deleted(
    owner_id: str, transaction: Transaction, outcome: DeleteOutcome
) -> TransactionDeleted:
    """Describe a deleted transaction.

    A loan deleted with its origin transaction was lent by that
    transaction's source partition.
    """
    loan = _loan_ref(transaction)
    if loan is None and outcome.loan_id is not None:
        loan = LoanRef(
            loan_id=outcome.loan_id,
            lender_partition_id=transaction.source_partition.id,
        )

    return TransactionDeleted(
        owner_id=owner_id,
        transaction_id=transaction.id,
        category=category_ref(transaction.category),
        source=partition_ref(transaction.source_partition),
        counterpart=_optional_partition_ref(transaction.counterpart_partition),
        loan=loan,
        deleted_loan_id=outcome.loan_id,
    )


def loan_created(owner_id: str, transaction: Transaction) -> LoanCreated:
    """Describe a new loan from its origin transaction."""
    if transaction.loan is None or transaction.counterpart_partition is None:
        raise ValueError("Loan transaction must carry a loan link and a counterpart")

    return LoanCreated(
        owner_id=owner_id,
        transaction_id=transaction.id,
        loan_id=transaction.loan.loan_id,
        category=category_ref(transaction.category),
        lender=partition_ref(transaction.source_partition),
        borrower=partition_ref(transaction.counterpart_partition),
    )


def loan_payment_made(owner_id: str, loan: Loan, payment: Transaction) -> LoanPaymentMade:
    """Describe a payment transaction made against loan."""
    return LoanPaymentMade(
        owner_id=owner_id,
        transaction_id=payment.id,
        loan_id=loan.id,
        category=category_ref(loan.transaction.category),
        lender=partition_ref(loan.lender),
        borrower=partition_ref(loan.borrower),
    )
