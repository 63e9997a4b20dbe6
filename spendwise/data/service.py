"""Abstract data-service interface.

The data service owns all financial data and computes every balance from
transactions. The application only talks to it through this interface, so
any backend (a database, a remote API, an in-memory fake) can be used
without changing the selection or invalidation logic.
"""

from abc import ABC, abstractmethod
from datetime import date as Date
from decimal import Decimal
from typing import Any, Optional

from spendwise.data.queries import (
    AccountBalanceParams,
    AccountParams,
    BudgetAmountParams,
    CategoryBalanceParams,
    CategoryKindBalanceParams,
    CategoryParams,
    GroupedTransactionsParams,
    OwnerParams,
    PartitionBalanceParams,
    PartitionParams,
    PartitionsParams,
    QueryKey,
    QueryName,
    TransactionsParams,
    UnpaidLoansParams,
)
from spendwise.domain.models import (
    Account,
    BudgetProfile,
    Category,
    CategoryKind,
    CreatedTransaction,
    DeleteOutcome,
    Loan,
    Partition,
    Transaction,
    TransactionChanges,
    TransactionPage,
)
from spendwise.domain.mutations import ChangeKind


class DataService(ABC):
    """Abstract interface for the finance data backend."""

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_transaction(
        self,
        source_partition_id: str,
        category_id: str,
        value: Decimal,
        description: Optional[str] = None,
        destination_partition_id: Optional[str] = None,
        date: Optional[Date] = None,
    ) -> CreatedTransaction:
        """Create a transaction.

        Args:
            source_partition_id: Partition the transaction posts against
            category_id: Category of the transaction
            value: Transaction value
            description: Optional description
            destination_partition_id: Counterpart partition for transfers.
                A mirrored counterpart transaction is created as well.
            date: Transaction date (defaults to today)

        Returns:
            The created transaction and, for transfers, its counterpart
        """
        ...

    @abstractmethod
    async def update_transaction(
        self, transaction_id: str, changes: TransactionChanges
    ) -> None:
        """Apply changes to a transaction (and its mirrored counterpart)."""
        ...

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> DeleteOutcome:
        """Delete a transaction.

        Deleting the origin transaction of an unpaid loan deletes the loan
        too; its id is reported in the outcome.
        """
        ...

    @abstractmethod
    async def make_a_loan(
        self,
        source_partition_id: str,
        destination_partition_id: str,
        category_id: str,
        amount: Decimal,
        to_pay: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """Lend funds from the source partition to the destination partition.

        Args:
            source_partition_id: Lender partition
            destination_partition_id: Borrower partition
            category_id: Category of the loan transaction
            amount: Amount lent
            to_pay: Amount to be repaid (defaults to amount)
            description: Optional description

        Returns:
            The loan's origin transaction, carrying its LoanLink
        """
        ...

    @abstractmethod
    async def make_a_payment(
        self, loan_id: str, amount: Decimal, description: Optional[str] = None
    ) -> Transaction:
        """Pay back part of a loan. Returns the payment transaction."""
        ...

    @abstractmethod
    async def create_partition(
        self, account_id: str, name: str, is_private: bool = False
    ) -> Partition:
        ...

    @abstractmethod
    async def update_partition(self, partition_id: str, **changes: Any) -> Partition:
        ...

    @abstractmethod
    async def delete_partition(
        self, partition_id: str, archive: bool = False
    ) -> Optional[ChangeKind]:
        """Delete a partition.

        A partition that transactions still post against is only removed
        when archive is set, and is then archived instead of deleted.

        Returns:
            ChangeKind.DELETED or ChangeKind.ARCHIVED, or None if the
            partition has transactions and archive is not set (nothing changed)
        """
        ...

    @abstractmethod
    async def create_category(
        self, name: str, kind: CategoryKind, is_private: bool = False
    ) -> Category:
        ...

    @abstractmethod
    async def update_category(self, category_id: str, **changes: Any) -> Category:
        ...

    @abstractmethod
    async def delete_category(self, category_id: str) -> None:
        ...

    @abstractmethod
    async def update_account(self, account_id: str, **changes: Any) -> Account:
        ...

    @abstractmethod
    async def delete_account(self, account_id: str) -> None:
        ...

    @abstractmethod
    async def update_budget(
        self, profile_id: str, amounts: dict[str, Decimal]
    ) -> BudgetProfile:
        """Set the budgeted amount of each category in a budget profile.

        Args:
            profile_id: Budget profile to update
            amounts: Budgeted amount by category ID

        Returns:
            The updated budget profile
        """
        ...

    @abstractmethod
    async def create_budget_profile(
        self,
        name: str,
        partition_ids: tuple[str, ...] = (),
        is_for_all: bool = False,
    ) -> BudgetProfile:
        ...

    # ------------------------------------------------------------------
    # Entity lookups used by mutation bookkeeping
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def get_loan(self, loan_id: str) -> Optional[Loan]:
        ...

    @abstractmethod
    async def get_partition(self, partition_id: str) -> Optional[Partition]:
        ...

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        ...

    # ------------------------------------------------------------------
    # Read queries
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_accounts(self, params: OwnerParams) -> list[Account]:
        ...

    @abstractmethod
    async def get_partitions(self, params: PartitionsParams) -> list[Partition]:
        ...

    @abstractmethod
    async def get_user_categories(self, params: OwnerParams) -> list[Category]:
        ...

    @abstractmethod
    async def get_partition_balance(self, params: PartitionBalanceParams) -> Decimal:
        """Balance of a partition.

        The whole history when show_overall_balance is set, otherwise only
        transactions inside the date range.
        """
        ...

    @abstractmethod
    async def get_account_balance(self, params: AccountBalanceParams) -> Decimal:
        ...

    @abstractmethod
    async def get_category_balance(self, params: CategoryBalanceParams) -> Decimal:
        """Balance of a category over the selected partitions (all if none)."""
        ...

    @abstractmethod
    async def get_category_kind_balance(
        self, params: CategoryKindBalanceParams
    ) -> Decimal:
        ...

    @abstractmethod
    async def partition_can_be_deleted(self, params: PartitionParams) -> bool:
        ...

    @abstractmethod
    async def account_can_be_deleted(self, params: AccountParams) -> bool:
        ...

    @abstractmethod
    async def category_can_be_deleted(self, params: CategoryParams) -> bool:
        ...

    @abstractmethod
    async def get_budget_profiles(self, params: OwnerParams) -> list[BudgetProfile]:
        ...

    @abstractmethod
    async def get_budget(self, params: BudgetAmountParams) -> Optional[Decimal]:
        """Budgeted amount of a category in a profile, None if not budgeted."""
        ...

    @abstractmethod
    async def get_partitions_with_loans(self, params: OwnerParams) -> list[Partition]:
        ...

    @abstractmethod
    async def get_unpaid_loans(self, params: UnpaidLoansParams) -> list[Loan]:
        ...

    @abstractmethod
    async def find_transactions(self, params: TransactionsParams) -> TransactionPage:
        """One page of transactions matching the filters, newest first."""
        ...

    @abstractmethod
    async def get_grouped_transactions(
        self, params: GroupedTransactionsParams
    ) -> dict[str, Decimal]:
        """Totals of the matching transactions by category ID."""
        ...

    async def load(self, key: QueryKey) -> Any:
        """Run the read query identified by key.

        Args:
            key: Query key; its params are passed to the read method

        Returns:
            Whatever the read method returns
        """
        method = getattr(self, _READERS[key.name])
        return await method(key.params)


# Read method for each query name
_READERS: dict[QueryName, str] = {
    QueryName.ACCOUNTS: "get_accounts",
    QueryName.PARTITIONS: "get_partitions",
    QueryName.CATEGORIES: "get_user_categories",
    QueryName.PARTITION_BALANCE: "get_partition_balance",
    QueryName.ACCOUNT_BALANCE: "get_account_balance",
    QueryName.CATEGORY_BALANCE: "get_category_balance",
    QueryName.CATEGORY_KIND_BALANCE: "get_category_kind_balance",
    QueryName.PARTITION_CAN_BE_DELETED: "partition_can_be_deleted",
    QueryName.ACCOUNT_CAN_BE_DELETED: "account_can_be_deleted",
    QueryName.CATEGORY_CAN_BE_DELETED: "category_can_be_deleted",
    QueryName.BUDGET_PROFILES: "get_budget_profiles",
    QueryName.BUDGET_AMOUNT: "get_budget",
    QueryName.PARTITIONS_WITH_LOANS: "get_partitions_with_loans",
    QueryName.UNPAID_LOANS: "get_unpaid_loans",
    QueryName.TRANSACTIONS: "find_transactions",
    QueryName.GROUPED_TRANSACTIONS: "get_grouped_transactions",
}
