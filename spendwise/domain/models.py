"""Domain models for the spendwise finance tracker.

All models are immutable (frozen dataclasses). They mirror the shapes the
data service returns; balances are never stored here, they are derived by
the data service from transactions.
"""

from dataclasses import dataclass, field, fields
from datetime import date as Date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4


def new_id() -> str:
    """Generate a new opaque identifier."""
    return uuid4().hex


class CategoryKind(Enum):
    """Kind of a transaction category."""

    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


class AccountGroup(Enum):
    """Ownership group of an account relative to the current user."""

    OWNED = "owned"  # Owned by the current user only
    COMMON = "common"  # Jointly owned
    OTHERS = "others"  # Not owned by the current user


@dataclass(frozen=True, slots=True)
class Account:
    """Ownership container of one or more partitions."""

    id: str
    name: str
    group: AccountGroup = AccountGroup.OWNED
    is_archived: bool = False

    def __post_init__(self) -> None:
        """Validate account data."""
        if not self.name.strip():
            raise ValueError("Account name cannot be empty")

    @classmethod
    def create(cls, name: str, **kwargs: object) -> "Account":
        """Factory method for creating accounts."""
        return cls(id=new_id(), name=name, **kwargs)

    def with_updates(self, **changes: object) -> "Account":
        """Create a new Account with updated fields."""
        current = _shallow_dict(self)
        current.update(changes)
        return Account(**current)


@dataclass(frozen=True, slots=True)
class Partition:
    """A named subdivision of an account that transactions post against."""

    id: str
    name: str
    account_id: str
    is_private: bool = False
    is_archived: bool = False

    def __post_init__(self) -> None:
        """Validate partition data."""
        if not self.name.strip():
            raise ValueError("Partition name cannot be empty")

        if not self.account_id:
            raise ValueError("Partition must belong to an account")

    @classmethod
    def create(cls, name: str, account_id: str, **kwargs: object) -> "Partition":
        """Factory method for creating partitions.

        Args:
            name: Partition name
            account_id: Owning account ID
            **kwargs: Optional fields (is_private, is_archived)

        Returns:
            New Partition instance
        """
        return cls(id=new_id(), name=name, account_id=account_id, **kwargs)

    def with_updates(self, **changes: object) -> "Partition":
        """Create a new Partition with updated fields."""
        current = _shallow_dict(self)
        current.update(changes)
        return Partition(**current)


@dataclass(frozen=True, slots=True)
class Category:
    """Classification of a transaction as income, expense or transfer."""

    id: str
    name: str
    kind: CategoryKind
    is_private: bool = False

    def __post_init__(self) -> None:
        """Validate category data."""
        if not self.name.strip():
            raise ValueError("Category name cannot be empty")

    @classmethod
    def create(
        cls, name: str, kind: CategoryKind, is_private: bool = False
    ) -> "Category":
        """Factory method for creating categories."""
        return cls(id=new_id(), name=name, kind=kind, is_private=is_private)

    def with_updates(self, **changes: object) -> "Category":
        """Create a new Category with updated fields."""
        current = _shallow_dict(self)
        current.update(changes)
        return Category(**current)


@dataclass(frozen=True, slots=True)
class LoanLink:
    """Marks a transaction as part of a loan (the loan itself or a payment)."""

    loan_id: str
    lender_partition_id: str


@dataclass(frozen=True, slots=True)
class Transaction:
    """Immutable transaction record.

    A transfer carries the partition of its mirrored counterpart transaction.
    Loan origins and loan payments carry a LoanLink.
    """

    id: str
    value: Decimal
    category: Category
    source_partition: Partition
    date: Date
    description: Optional[str] = None
    counterpart_partition: Optional[Partition] = None
    loan: Optional[LoanLink] = None

    def __post_init__(self) -> None:
        """Validate transaction data."""
        if self.value < 0:
            raise ValueError("Value cannot be negative")

        if (
            self.counterpart_partition is not None
            and self.counterpart_partition.id == self.source_partition.id
        ):
            raise ValueError("Counterpart partition must differ from source")

    @property
    def is_transfer(self) -> bool:
        """Check if this transaction has a counterpart on another partition."""
        return self.counterpart_partition is not None

    @property
    def is_loan_related(self) -> bool:
        """Check if this transaction is a loan or a loan payment."""
        return self.loan is not None

    def with_updates(self, **changes: object) -> "Transaction":
        """Create new instance with updated fields."""
        current = _shallow_dict(self)
        current.update(changes)
        return Transaction(**current)

    @classmethod
    def create(
        cls,
        value: Decimal,
        category: Category,
        source_partition: Partition,
        date: Optional[Date] = None,
        **kwargs: object,
    ) -> "Transaction":
        """Factory method with sensible defaults.

        Args:
            value: Transaction value (must not be negative)
            category: Category of the transaction
            source_partition: Partition the transaction posts against
            date: Transaction date (defaults to today)
            **kwargs: Optional fields (description, counterpart_partition, loan)

        Returns:
            New Transaction instance
        """
        return cls(
            id=new_id(),
            value=value,
            category=category,
            source_partition=source_partition,
            date=date or Date.today(),
            **kwargs,
        )


@dataclass(frozen=True, slots=True)
class CreatedTransaction:
    """Result of creating a transaction: the transaction and its mirror."""

    transaction: Transaction
    counterpart: Optional[Transaction] = None


@dataclass(frozen=True, slots=True)
class TransactionChanges:
    """Partial fields for a transaction update. None means unchanged.

    partition moves the transaction to another partition. It replaces the
    source partition, or the counterpart partition of a transfer when
    on_counterpart is set.
    """

    value: Optional[Decimal] = None
    description: Optional[str] = None
    date: Optional[Date] = None
    category: Optional[Category] = None
    partition: Optional[Partition] = None
    on_counterpart: bool = False

    def __post_init__(self) -> None:
        """Validate the change set."""
        if self.on_counterpart and self.partition is None:
            raise ValueError("on_counterpart requires a partition")

    @property
    def is_empty(self) -> bool:
        """Check if no field is being changed."""
        return not self.as_dict()

    @property
    def moved_field(self) -> str:
        """Transaction field that partition replaces."""
        return "counterpart_partition" if self.on_counterpart else "source_partition"

    def as_dict(self) -> dict[str, object]:
        """Return only the fields being changed, keyed by Transaction field."""
        changed = {
            name: getattr(self, name)
            for name in ("value", "description", "date", "category")
            if getattr(self, name) is not None
        }
        if self.partition is not None:
            changed[self.moved_field] = self.partition
        return changed


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    """Result of deleting a transaction.

    loan_id is set when the deleted transaction was the origin of an unpaid
    loan, which is deleted along with it.
    """

    transaction_id: str
    loan_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Loan:
    """Borrowed funds tracked until fully repaid.

    The origin transaction posts against the lender partition; its
    counterpart partition is the borrower.
    """

    id: str
    transaction: Transaction
    amount_to_pay: Decimal
    amount_paid: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        """Validate loan data."""
        if self.transaction.counterpart_partition is None:
            raise ValueError("Loan transaction must have a counterpart")

        if self.amount_to_pay <= 0:
            raise ValueError("Amount to pay must be positive")

    @property
    def lender(self) -> Partition:
        return self.transaction.source_partition

    @property
    def borrower(self) -> Partition:
        return self.transaction.counterpart_partition

    @property
    def remaining(self) -> Decimal:
        """Amount still owed."""
        return self.amount_to_pay - self.amount_paid

    @property
    def is_paid(self) -> bool:
        return self.remaining <= 0


@dataclass(frozen=True, slots=True)
class BudgetProfile:
    """A named, saved set of partitions used to scope balance views.

    is_for_all profiles are shared with every user of the database.
    """

    id: str
    name: str
    partition_ids: tuple[str, ...] = ()
    is_for_all: bool = False

    def __post_init__(self) -> None:
        """Validate budget profile data."""
        if not self.name.strip():
            raise ValueError("Budget profile name cannot be empty")

    @classmethod
    def create(
        cls, name: str, partition_ids: tuple[str, ...] = (), is_for_all: bool = False
    ) -> "BudgetProfile":
        """Factory method for creating budget profiles."""
        return cls(
            id=new_id(),
            name=name,
            partition_ids=tuple(partition_ids),
            is_for_all=is_for_all,
        )


@dataclass(frozen=True, slots=True)
class TransactionPage:
    """One page of transactions matching the current selection."""

    transactions: tuple[Transaction, ...] = field(default_factory=tuple)
    has_next_page: bool = False


def _shallow_dict(instance: object) -> dict[str, object]:
    """Field values of a dataclass without recursing into nested models.

    asdict() would turn nested models into dicts, which the constructors
    do not accept.
    """
    return {f.name: getattr(instance, f.name) for f in fields(instance)}


