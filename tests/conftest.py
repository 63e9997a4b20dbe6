"""Pytest fixtures and configuration."""

import asyncio
import os
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from spendwise.data.service import DataService
from spendwise.domain.models import (
    Account,
    BudgetProfile,
    Category,
    CategoryKind,
    CreatedTransaction,
    DeleteOutcome,
    Loan,
    LoanLink,
    Partition,
    Transaction,
    TransactionPage,
    new_id,
)
from spendwise.domain.mutations import ChangeKind
from spendwise.state.selection import initial_state

# Qt needs no display for signal tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

TODAY = date(2024, 3, 15)


class FakeDataService(DataService):
    """In-memory data service.

    Balances are summed from stored transactions. Every read is recorded in
    reads; fail_with makes the next mutation raise.
    """

    def __init__(self):
        self.accounts: dict[str, Account] = {}
        self.partitions: dict[str, Partition] = {}
        self.categories: dict[str, Category] = {}
        self.transactions: dict[str, Transaction] = {}
        self.loans: dict[str, Loan] = {}
        self.profiles: dict[str, BudgetProfile] = {}
        self.budgets: dict[tuple[str, str], Decimal] = {}
        self.reads: list[tuple[str, object]] = []
        self.fail_with: Optional[Exception] = None
        self.read_delay = 0.0

    # Seeding helpers

    def add_account(self, name: str, **kwargs) -> Account:
        account = Account.create(name, **kwargs)
        self.accounts[account.id] = account
        return account

    def add_partition(self, name: str, account: Account, **kwargs) -> Partition:
        partition = Partition.create(name, account.id, **kwargs)
        self.partitions[partition.id] = partition
        return partition

    def add_category(self, name: str, kind: CategoryKind) -> Category:
        category = Category.create(name, kind)
        self.categories[category.id] = category
        return category

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    async def _read(self, name: str, params: object) -> None:
        self.reads.append((name, params))
        if self.read_delay:
            await asyncio.sleep(self.read_delay)

    # Mutations

    async def create_transaction(
        self,
        source_partition_id,
        category_id,
        value,
        description=None,
        destination_partition_id=None,
        date=None,
    ):
        self._check_failure()
        source = self.partitions[source_partition_id]
        counterpart = (
            self.partitions[destination_partition_id]
            if destination_partition_id
            else None
        )
        transaction = Transaction.create(
            value,
            self.categories[category_id],
            source,
            date=date or TODAY,
            description=description,
            counterpart_partition=counterpart,
        )
        self.transactions[transaction.id] = transaction

        mirror = None
        if counterpart is not None:
            mirror = transaction.with_updates(
                id=new_id(),
                source_partition=counterpart,
                counterpart_partition=source,
            )
            self.transactions[mirror.id] = mirror
        return CreatedTransaction(transaction, mirror)

    async def update_transaction(self, transaction_id, changes):
        self._check_failure()
        transaction = self.transactions[transaction_id]
        self.transactions[transaction_id] = transaction.with_updates(
            **changes.as_dict()
        )

    async def delete_transaction(self, transaction_id):
        self._check_failure()
        self.transactions.pop(transaction_id)
        for loan in list(self.loans.values()):
            if loan.transaction.id == transaction_id and not loan.is_paid:
                del self.loans[loan.id]
                return DeleteOutcome(transaction_id, loan_id=loan.id)
        return DeleteOutcome(transaction_id)

    async def make_a_loan(
        self,
        source_partition_id,
        destination_partition_id,
        category_id,
        amount,
        to_pay=None,
        description=None,
    ):
        self._check_failure()
        loan_id = new_id()
        transaction = Transaction.create(
            amount,
            self.categories[category_id],
            self.partitions[source_partition_id],
            date=TODAY,
            description=description,
            counterpart_partition=self.partitions[destination_partition_id],
            loan=LoanLink(loan_id, source_partition_id),
        )
        self.transactions[transaction.id] = transaction
        self.loans[loan_id] = Loan(loan_id, transaction, to_pay or amount)
        return transaction

    async def make_a_payment(self, loan_id, amount, description=None):
        self._check_failure()
        loan = self.loans[loan_id]
        payment = Transaction.create(
            amount,
            loan.transaction.category,
            loan.borrower,
            date=TODAY,
            description=description,
            counterpart_partition=loan.lender,
            loan=LoanLink(loan_id, loan.lender.id),
        )
        self.transactions[payment.id] = payment
        self.loans[loan_id] = replace(loan, amount_paid=loan.amount_paid + amount)
        return payment

    async def create_partition(self, account_id, name, is_private=False):
        self._check_failure()
        partition = Partition.create(name, account_id, is_private=is_private)
        self.partitions[partition.id] = partition
        return partition

    async def update_partition(self, partition_id, **changes):
        self._check_failure()
        partition = self.partitions[partition_id].with_updates(**changes)
        self.partitions[partition_id] = partition
        return partition

    async def delete_partition(self, partition_id, archive=False):
        self._check_failure()
        in_use = any(
            t.source_partition.id == partition_id for t in self.transactions.values()
        )
        if not in_use:
            del self.partitions[partition_id]
            return ChangeKind.DELETED
        if not archive:
            return None
        self.partitions[partition_id] = self.partitions[partition_id].with_updates(
            is_archived=True
        )
        return ChangeKind.ARCHIVED

    async def create_category(self, name, kind, is_private=False):
        self._check_failure()
        category = Category.create(name, kind, is_private=is_private)
        self.categories[category.id] = category
        return category

    async def update_category(self, category_id, **changes):
        self._check_failure()
        category = self.categories[category_id].with_updates(**changes)
        self.categories[category_id] = category
        return category

    async def delete_category(self, category_id):
        self._check_failure()
        del self.categories[category_id]

    async def update_account(self, account_id, **changes):
        self._check_failure()
        account = self.accounts[account_id].with_updates(**changes)
        self.accounts[account_id] = account
        return account

    async def delete_account(self, account_id):
        self._check_failure()
        del self.accounts[account_id]

    async def update_budget(self, profile_id, amounts):
        self._check_failure()
        for category_id, amount in amounts.items():
            self.budgets[(category_id, profile_id)] = amount
        return self.profiles[profile_id]

    async def create_budget_profile(self, name, partition_ids=(), is_for_all=False):
        self._check_failure()
        profile = BudgetProfile.create(name, partition_ids, is_for_all=is_for_all)
        self.profiles[profile.id] = profile
        return profile

    # Entity lookups

    async def get_transaction(self, transaction_id):
        return self.transactions.get(transaction_id)

    async def get_loan(self, loan_id):
        return self.loans.get(loan_id)

    async def get_partition(self, partition_id):
        return self.partitions.get(partition_id)

    async def get_category(self, category_id):
        return self.categories.get(category_id)

    # Reads

    def _in_window(self, transaction, params) -> bool:
        if params.show_overall_balance:
            return True
        start, end = params.date_range_start, params.date_range_end
        return (start is None or transaction.date >= start) and (
            end is None or transaction.date <= end
        )

    @staticmethod
    def _signed(transaction: Transaction) -> Decimal:
        if transaction.category.kind == CategoryKind.EXPENSE:
            return -transaction.value
        return transaction.value

    async def get_accounts(self, params):
        await self._read("get_accounts", params)
        return list(self.accounts.values())

    async def get_partitions(self, params):
        await self._read("get_partitions", params)
        return [
            p
            for p in self.partitions.values()
            if not p.is_archived
            and (params.account_id is None or p.account_id == params.account_id)
        ]

    async def get_user_categories(self, params):
        await self._read("get_user_categories", params)
        return list(self.categories.values())

    async def get_partition_balance(self, params):
        await self._read("get_partition_balance", params)
        return sum(
            (
                self._signed(t)
                for t in self.transactions.values()
                if t.source_partition.id == params.partition_id
                and self._in_window(t, params)
            ),
            Decimal("0"),
        )

    async def get_account_balance(self, params):
        await self._read("get_account_balance", params)
        return sum(
            (
                self._signed(t)
                for t in self.transactions.values()
                if t.source_partition.account_id == params.account_id
                and self._in_window(t, params)
            ),
            Decimal("0"),
        )

    async def get_category_balance(self, params):
        await self._read("get_category_balance", params)
        return sum(
            (
                t.value
                for t in self.transactions.values()
                if t.category.id == params.category_id
                and (
                    not params.partition_ids
                    or t.source_partition.id in params.partition_ids
                )
                and self._in_window(t, params)
            ),
            Decimal("0"),
        )

    async def get_category_kind_balance(self, params):
        await self._read("get_category_kind_balance", params)
        return sum(
            (
                t.value
                for t in self.transactions.values()
                if t.category.kind == params.kind and self._in_window(t, params)
            ),
            Decimal("0"),
        )

    async def partition_can_be_deleted(self, params):
        await self._read("partition_can_be_deleted", params)
        return not any(
            t.source_partition.id == params.partition_id
            for t in self.transactions.values()
        )

    async def account_can_be_deleted(self, params):
        await self._read("account_can_be_deleted", params)
        return not any(
            p.account_id == params.account_id for p in self.partitions.values()
        )

    async def category_can_be_deleted(self, params):
        await self._read("category_can_be_deleted", params)
        return not any(
            t.category.id == params.category_id for t in self.transactions.values()
        )

    async def get_budget_profiles(self, params):
        await self._read("get_budget_profiles", params)
        return list(self.profiles.values())

    async def get_budget(self, params):
        await self._read("get_budget", params)
        return self.budgets.get((params.category_id, params.profile_id))

    async def get_partitions_with_loans(self, params):
        await self._read("get_partitions_with_loans", params)
        lenders = {loan.lender.id for loan in self.loans.values() if not loan.is_paid}
        return [self.partitions[id] for id in lenders if id in self.partitions]

    async def get_unpaid_loans(self, params):
        await self._read("get_unpaid_loans", params)
        return [
            loan
            for loan in self.loans.values()
            if loan.lender.id == params.partition_id and not loan.is_paid
        ]

    async def find_transactions(self, params):
        await self._read("find_transactions", params)
        matching = sorted(
            (
                t
                for t in self.transactions.values()
                if self._in_window(t, params)
                and (
                    not params.partition_ids
                    or t.source_partition.id in params.partition_ids
                )
                and (not params.category_ids or t.category.id in params.category_ids)
            ),
            key=lambda t: t.date,
            reverse=True,
        )
        offset = (params.current_page - 1) * params.items_per_page
        page = matching[offset : offset + params.items_per_page]
        return TransactionPage(
            tuple(page), has_next_page=len(matching) > offset + len(page)
        )

    async def get_grouped_transactions(self, params):
        await self._read("get_grouped_transactions", params)
        totals: dict[str, Decimal] = {}
        for t in self.transactions.values():
            if self._in_window(t, params):
                totals[t.category.id] = totals.get(t.category.id, Decimal("0")) + t.value
        return totals


@pytest.fixture
def data_service():
    """Empty in-memory data service."""
    return FakeDataService()


@pytest.fixture
def seeded(data_service):
    """Data service seeded with two accounts, three partitions and categories.

    Returns a namespace-like dict of the created entities.
    """
    household = data_service.add_account("Household")
    savings = data_service.add_account("Savings")
    entities = {
        "household": household,
        "savings": savings,
        "cash": data_service.add_partition("Cash", household),
        "card": data_service.add_partition("Card", household),
        "vault": data_service.add_partition("Vault", savings),
        "groceries": data_service.add_category("Groceries", CategoryKind.EXPENSE),
        "salary": data_service.add_category("Salary", CategoryKind.INCOME),
        "transfer": data_service.add_category("Transfer", CategoryKind.TRANSFER),
    }
    return entities


@pytest.fixture
def make_transaction(seeded):
    """Factory fixture for creating test transactions."""

    def _make(**kwargs):
        defaults = {
            "value": Decimal("100.00"),
            "category": seeded["groceries"],
            "source_partition": seeded["cash"],
            "date": TODAY,
            "description": "Test Transaction",
        }
        defaults.update(kwargs)
        return Transaction.create(**defaults)

    return _make


@pytest.fixture
def state():
    """Initial selection for March 2024."""
    return initial_state(TODAY)


@pytest.fixture
def scoped_state(state):
    """Initial selection with the overall balance turned off."""
    return replace(state, show_overall_balance=False)
