"""Mutation coordination.

MutationService is the write path of the application. Each method performs
one data-service mutation and, only once it has succeeded, marks every
cached query it made stale and keeps the selection consistent with the
changed data.
"""

import logging
from datetime import date as Date
from decimal import Decimal
from typing import Any, Optional, TypeVar

from spendwise.data.query_cache import QueryCache
from spendwise.data.service import DataService
from spendwise.domain.errors import ValidationError
from spendwise.domain.models import (
    Account,
    BudgetProfile,
    Category,
    CategoryKind,
    CreatedTransaction,
    DeleteOutcome,
    Partition,
    Transaction,
    TransactionChanges,
)
from spendwise.domain.mutations import (
    AccountChanged,
    BudgetProfileCreated,
    BudgetProfileToggled,
    CategoryChanged,
    ChangeKind,
    MutationResult,
    PartitionChanged,
    category_ref,
    loan_created,
    loan_payment_made,
    partition_ref,
    transaction_created,
    transaction_deleted,
    transaction_updated,
)
from spendwise.services.invalidation import plan_invalidations, selection_followups
from spendwise.state.store import SelectionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require(entity: Optional[T], kind: str, id: str) -> T:
    if entity is None:
        raise ValidationError(f"{kind} {id} not found")
    return entity


def _require_positive(amount: Decimal, name: str) -> None:
    if amount <= 0:
        raise ValidationError(f"{name} must be positive, got {amount}")


def _check_move(transaction: Transaction, changes: TransactionChanges) -> None:
    if changes.on_counterpart:
        if transaction.counterpart_partition is None:
            raise ValidationError(f"Transaction {transaction.id} is not a transfer")
        other = transaction.source_partition
    else:
        other = transaction.counterpart_partition

    if other is not None and changes.partition.id == other.id:
        raise ValidationError("Transfer destination must differ from source")


class MutationService:
    """Runs mutations and invalidates the cached queries they affect.

    Data-service errors propagate unchanged; nothing is invalidated then.

    Example:
        >>> service = MutationService(data_service, cache, owner_id="u1", store=store)
        >>> await service.create_transaction("p1", "c1", Decimal("12.50"))
    """

    def __init__(
        self,
        data_service: DataService,
        cache: QueryCache,
        owner_id: str,
        store: Optional[SelectionStore] = None,
    ):
        """Initialize the mutation service.

        Args:
            data_service: Backend performing the mutations
            cache: Query cache to invalidate
            owner_id: User the session belongs to
            store: Optional selection store kept consistent with the data
        """
        self._data = data_service
        self._cache = cache
        self._owner_id = owner_id
        self._store = store

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def _apply(self, result: MutationResult) -> int:
        """Invalidate and update the selection after a successful mutation."""
        count = self._cache.invalidate(plan_invalidations(result))

        if self._store is not None:
            for action in selection_followups(result):
                self._store.dispatch(action)

        logger.info(
            f"{type(result).__name__}: {count} cached queries invalidated"
        )
        return count

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        source_partition_id: str,
        category_id: str,
        value: Decimal,
        description: Optional[str] = None,
        destination_partition_id: Optional[str] = None,
        date: Optional[Date] = None,
    ) -> CreatedTransaction:
        """Create a transaction (a transfer if a destination is given)."""
        if value < 0:
            raise ValidationError(f"Value cannot be negative, got {value}")
        if destination_partition_id == source_partition_id:
            raise ValidationError("Transfer destination must differ from source")

        created = await self._data.create_transaction(
            source_partition_id,
            category_id,
            value,
            description=description,
            destination_partition_id=destination_partition_id,
            date=date,
        )
        self._apply(transaction_created(self._owner_id, created.transaction))
        return created

    async def update_transaction(
        self, transaction_id: str, changes: TransactionChanges
    ) -> None:
        """Apply changes to a transaction.

        Args:
            transaction_id: Transaction to edit
            changes: Fields to change; a partition change moves the source,
                or the counterpart of a transfer when on_counterpart is set

        Raises:
            ValidationError: If changes is empty, the transaction is unknown
                or the move would put both sides on one partition
        """
        if changes.is_empty:
            raise ValidationError("No changes given")

        before = _require(
            await self._data.get_transaction(transaction_id),
            "Transaction",
            transaction_id,
        )
        if changes.partition is not None:
            _check_move(before, changes)

        await self._data.update_transaction(transaction_id, changes)
        self._apply(transaction_updated(self._owner_id, before, changes))

    async def delete_transaction(self, transaction_id: str) -> DeleteOutcome:
        """Delete a transaction.

        If the transaction was the origin of an unpaid loan, the loan is
        deleted too and dropped from the loan selection.
        """
        transaction = _require(
            await self._data.get_transaction(transaction_id),
            "Transaction",
            transaction_id,
        )
        outcome = await self._data.delete_transaction(transaction_id)
        self._apply(transaction_deleted(self._owner_id, transaction, outcome))
        return outcome

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    async def make_a_loan(
        self,
        source_partition_id: str,
        destination_partition_id: str,
        category_id: str,
        amount: Decimal,
        to_pay: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """Lend funds from one partition to another.

        Args:
            source_partition_id: Lender partition
            destination_partition_id: Borrower partition
            category_id: Category of the loan transaction
            amount: Amount lent (must be positive)
            to_pay: Amount to be repaid (defaults to amount)
            description: Optional description

        Returns:
            The loan's origin transaction
        """
        _require_positive(amount, "Loan amount")
        if to_pay is not None:
            _require_positive(to_pay, "Amount to pay")
        if source_partition_id == destination_partition_id:
            raise ValidationError("A partition cannot lend to itself")

        transaction = await self._data.make_a_loan(
            source_partition_id,
            destination_partition_id,
            category_id,
            amount,
            to_pay=to_pay,
            description=description,
        )
        self._apply(loan_created(self._owner_id, transaction))
        return transaction

    async def make_a_payment(
        self, loan_id: str, amount: Decimal, description: Optional[str] = None
    ) -> Transaction:
        """Pay back part of a loan. Returns the payment transaction."""
        _require_positive(amount, "Payment amount")

        loan = _require(await self._data.get_loan(loan_id), "Loan", loan_id)
        payment = await self._data.make_a_payment(
            loan_id, amount, description=description
        )
        self._apply(loan_payment_made(self._owner_id, loan, payment))
        return payment

    # ------------------------------------------------------------------
    # Partitions, categories and accounts
    # ------------------------------------------------------------------

    async def create_partition(
        self, account_id: str, name: str, is_private: bool = False
    ) -> Partition:
        partition = await self._data.create_partition(
            account_id, name, is_private=is_private
        )
        self._apply(
            PartitionChanged(self._owner_id, partition_ref(partition), ChangeKind.CREATED)
        )
        return partition

    async def update_partition(self, partition_id: str, **changes: Any) -> Partition:
        """Rename a partition or change its privacy."""
        if not changes:
            raise ValidationError("No changes given")

        partition = await self._data.update_partition(partition_id, **changes)
        self._apply(PartitionChanged(self._owner_id, partition_ref(partition)))
        return partition

    async def delete_partition(self, partition_id: str, archive: bool = False) -> bool:
        """Delete a partition, or archive it if transactions still use it.

        Args:
            partition_id: Partition to remove
            archive: Archive the partition when it cannot be deleted

        Returns:
            False if the partition has transactions and archive is not set;
            nothing is changed or invalidated then
        """
        partition = _require(
            await self._data.get_partition(partition_id), "Partition", partition_id
        )
        change = await self._data.delete_partition(partition_id, archive=archive)
        if change is None:
            logger.info(f"Partition {partition_id} has transactions, not deleted")
            return False

        self._apply(PartitionChanged(self._owner_id, partition_ref(partition), change))
        return True

    async def create_category(
        self, name: str, kind: CategoryKind, is_private: bool = False
    ) -> Category:
        category = await self._data.create_category(name, kind, is_private=is_private)
        self._apply(
            CategoryChanged(self._owner_id, category_ref(category), ChangeKind.CREATED)
        )
        return category

    async def update_category(self, category_id: str, **changes: Any) -> Category:
        if not changes:
            raise ValidationError("No changes given")

        category = await self._data.update_category(category_id, **changes)
        self._apply(CategoryChanged(self._owner_id, category_ref(category)))
        return category

    async def delete_category(self, category_id: str) -> None:
        category = _require(
            await self._data.get_category(category_id), "Category", category_id
        )
        await self._data.delete_category(category_id)
        self._apply(
            CategoryChanged(self._owner_id, category_ref(category), ChangeKind.DELETED)
        )

    async def update_account(self, account_id: str, **changes: Any) -> Account:
        if not changes:
            raise ValidationError("No changes given")

        account = await self._data.update_account(account_id, **changes)
        self._apply(AccountChanged(self._owner_id, account.id))
        return account

    async def delete_account(self, account_id: str) -> None:
        await self._data.delete_account(account_id)
        self._apply(AccountChanged(self._owner_id, account_id, ChangeKind.DELETED))

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    async def create_budget_profile(
        self, name: str, partition_ids: tuple[str, ...] = (), is_for_all: bool = False
    ) -> BudgetProfile:
        """Save a named set of partitions as a budget profile."""
        if not name.strip():
            raise ValidationError("Budget profile name cannot be empty")

        profile = await self._data.create_budget_profile(
            name.strip(), tuple(partition_ids), is_for_all=is_for_all
        )
        self._apply(BudgetProfileCreated(self._owner_id, profile.id))
        return profile

    async def update_budget(
        self, profile_id: str, amounts: dict[str, Decimal]
    ) -> BudgetProfile:
        """Set budgeted amounts by category ID in a budget profile."""
        if not amounts:
            raise ValidationError("No budget amounts given")
        for category_id, amount in amounts.items():
            if amount < 0:
                raise ValidationError(
                    f"Budget for {category_id} cannot be negative, got {amount}"
                )

        profile = await self._data.update_budget(profile_id, amounts)
        self._apply(
            BudgetProfileToggled(self._owner_id, profile.id, tuple(amounts))
        )
        return profile
