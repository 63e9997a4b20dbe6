"""Tests for MutationService."""

import pytest
from dataclasses import replace
from datetime import date
from decimal import Decimal

from spendwise.data.queries import QueryName
from spendwise.data.query_cache import QueryCache
from spendwise.domain.errors import ValidationError
from spendwise.domain.models import BudgetProfile, CategoryKind, TransactionChanges
from spendwise.services.mutations import MutationService
from spendwise.state.actions import SelectionField, ToggleIds
from spendwise.state.selection import initial_state
from spendwise.state.store import SelectionStore

TODAY = date(2024, 3, 15)


@pytest.fixture
def store(qtbot):
    return SelectionStore(
        replace(initial_state(TODAY), show_overall_balance=False),
        clock=lambda: TODAY,
    )


@pytest.fixture
def cache(data_service):
    return QueryCache(data_service.load)


@pytest.fixture
def service(data_service, cache, store):
    return MutationService(data_service, cache, "u1", store=store)


async def warm(cache, store, name, **scope):
    """Fetch a query so it is cached, returning its key."""
    key = store.query_key(name, **scope)
    await cache.fetch(key)
    return key


class TestTransactionMutations:
    """Tests for transaction mutations."""

    @pytest.mark.asyncio
    async def test_create_invalidates_affected_queries(
        self, service, cache, store, seeded
    ):
        """Creating an expense refreshes its partition and category views."""
        cash, card = seeded["cash"], seeded["card"]
        cash_balance = await warm(
            cache, store, QueryName.PARTITION_BALANCE, partition_id=cash.id
        )
        card_balance = await warm(
            cache, store, QueryName.PARTITION_BALANCE, partition_id=card.id
        )
        transactions = await warm(cache, store, QueryName.TRANSACTIONS)
        accounts = await warm(cache, store, QueryName.ACCOUNTS, owner_id="u1")

        await service.create_transaction(cash.id, seeded["groceries"].id, Decimal("30"))

        assert cache.is_stale(cash_balance)
        assert cache.is_stale(transactions)
        assert not cache.is_stale(card_balance)
        assert not cache.is_stale(accounts)
        assert await cache.fetch(cash_balance) == Decimal("-30")

    @pytest.mark.asyncio
    async def test_transfer_invalidates_counterpart(self, service, cache, store, seeded):
        vault = seeded["vault"]
        vault_balance = await warm(
            cache, store, QueryName.PARTITION_BALANCE, partition_id=vault.id
        )
        savings_balance = await warm(
            cache, store, QueryName.ACCOUNT_BALANCE, account_id=seeded["savings"].id
        )

        created = await service.create_transaction(
            seeded["cash"].id,
            seeded["transfer"].id,
            Decimal("50"),
            destination_partition_id=vault.id,
        )

        assert created.counterpart is not None
        assert cache.is_stale(vault_balance)
        assert cache.is_stale(savings_balance)

    @pytest.mark.asyncio
    async def test_negative_value_rejected(self, service, data_service, seeded):
        with pytest.raises(ValidationError):
            await service.create_transaction(
                seeded["cash"].id, seeded["groceries"].id, Decimal("-1")
            )
        assert data_service.transactions == {}

    @pytest.mark.asyncio
    async def test_update_moves_category(
        self, service, cache, store, data_service, seeded
    ):
        """Recategorizing refreshes both categories."""
        created = await service.create_transaction(
            seeded["cash"].id, seeded["groceries"].id, Decimal("10")
        )
        groceries = await warm(
            cache, store, QueryName.CATEGORY_BALANCE, category_id=seeded["groceries"].id
        )
        salary = await warm(
            cache, store, QueryName.CATEGORY_BALANCE, category_id=seeded["salary"].id
        )

        await service.update_transaction(
            created.transaction.id, TransactionChanges(category=seeded["salary"])
        )

        assert cache.is_stale(groceries)
        assert cache.is_stale(salary)
        assert await cache.fetch(salary) == Decimal("10")

    @pytest.mark.asyncio
    async def test_update_moves_partition(self, service, cache, store, seeded):
        """Moving to another partition refreshes both partitions and accounts."""
        created = await service.create_transaction(
            seeded["cash"].id, seeded["groceries"].id, Decimal("10")
        )
        cash = await warm(
            cache, store, QueryName.PARTITION_BALANCE, partition_id=seeded["cash"].id
        )
        vault = await warm(
            cache, store, QueryName.PARTITION_BALANCE, partition_id=seeded["vault"].id
        )
        savings = await warm(
            cache, store, QueryName.ACCOUNT_BALANCE, account_id=seeded["savings"].id
        )

        await service.update_transaction(
            created.transaction.id, TransactionChanges(partition=seeded["vault"])
        )

        assert cache.is_stale(cash)
        assert cache.is_stale(vault)
        assert cache.is_stale(savings)
        assert await cache.fetch(cash) == Decimal("0")
        assert await cache.fetch(vault) == Decimal("-10")

    @pytest.mark.asyncio
    async def test_move_counterpart_of_plain_transaction(
        self, service, data_service, seeded
    ):
        created = await service.create_transaction(
            seeded["cash"].id, seeded["groceries"].id, Decimal("10")
        )
        changes = TransactionChanges(partition=seeded["vault"], on_counterpart=True)

        with pytest.raises(ValidationError, match="not a transfer"):
            await service.update_transaction(created.transaction.id, changes)

    @pytest.mark.asyncio
    async def test_move_onto_counterpart_rejected(self, service, data_service, seeded):
        """Both sides of a transfer cannot share a partition."""
        created = await service.create_transaction(
            seeded["cash"].id,
            seeded["transfer"].id,
            Decimal("10"),
            destination_partition_id=seeded["vault"].id,
        )

        with pytest.raises(ValidationError):
            await service.update_transaction(
                created.transaction.id, TransactionChanges(partition=seeded["vault"])
            )
        assert (
            data_service.transactions[created.transaction.id].source_partition
            == seeded["cash"]
        )

    @pytest.mark.asyncio
    async def test_update_requires_changes(self, service):
        with pytest.raises(ValidationError):
            await service.update_transaction("t1", TransactionChanges())

    @pytest.mark.asyncio
    async def test_update_unknown_transaction(self, service):
        with pytest.raises(ValidationError, match="not found"):
            await service.update_transaction(
                "missing", TransactionChanges(description="x")
            )

    @pytest.mark.asyncio
    async def test_failed_mutation_invalidates_nothing(
        self, service, cache, store, data_service, seeded
    ):
        """Data-service errors propagate and leave the cache alone."""
        key = await warm(cache, store, QueryName.TRANSACTIONS)
        data_service.fail_with = RuntimeError("constraint violated")

        with pytest.raises(RuntimeError, match="constraint"):
            await service.create_transaction(
                seeded["cash"].id, seeded["groceries"].id, Decimal("5")
            )

        assert not cache.is_stale(key)


class TestLoanMutations:
    """Tests for loans and payments."""

    @pytest.mark.asyncio
    async def test_make_a_loan(self, service, cache, store, seeded):
        cash = seeded["cash"]
        unpaid = await warm(
            cache, store, QueryName.UNPAID_LOANS, owner_id="u1", partition_id=cash.id
        )
        with_loans = await warm(
            cache, store, QueryName.PARTITIONS_WITH_LOANS, owner_id="u1"
        )

        transaction = await service.make_a_loan(
            cash.id, seeded["vault"].id, seeded["transfer"].id, Decimal("200")
        )

        assert transaction.loan is not None
        assert cache.is_stale(unpaid)
        assert cache.is_stale(with_loans)
        assert len(await cache.fetch(unpaid)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    async def test_non_positive_loan_rejected(self, service, seeded, amount):
        with pytest.raises(ValidationError):
            await service.make_a_loan(
                seeded["cash"].id, seeded["vault"].id, seeded["transfer"].id, amount
            )

    @pytest.mark.asyncio
    async def test_make_a_payment(self, service, cache, store, data_service, seeded):
        """Payments refresh the lender's unpaid loans."""
        cash = seeded["cash"]
        transaction = await service.make_a_loan(
            cash.id, seeded["vault"].id, seeded["transfer"].id, Decimal("100")
        )
        unpaid = await warm(
            cache, store, QueryName.UNPAID_LOANS, owner_id="u1", partition_id=cash.id
        )

        await service.make_a_payment(transaction.loan.loan_id, Decimal("100"))

        assert cache.is_stale(unpaid)
        assert await cache.fetch(unpaid) == []

    @pytest.mark.asyncio
    async def test_payment_amount_must_be_positive(self, service):
        with pytest.raises(ValidationError):
            await service.make_a_payment("l1", Decimal("0"))

    @pytest.mark.asyncio
    async def test_deleting_loan_origin_drops_loan_selection(
        self, service, store, seeded
    ):
        """The deleted loan leaves the loan selection."""
        transaction = await service.make_a_loan(
            seeded["cash"].id, seeded["vault"].id, seeded["transfer"].id, Decimal("80")
        )
        loan_id = transaction.loan.loan_id
        store.dispatch(ToggleIds(SelectionField.LOANS, [loan_id, "other"]))

        outcome = await service.delete_transaction(transaction.id)

        assert outcome.loan_id == loan_id
        assert store.state.loan_ids == ("other",)


class TestEntityMutations:
    """Tests for partition, category, account and budget mutations."""

    @pytest.mark.asyncio
    async def test_rename_partition(self, service, cache, store, seeded):
        partitions = await warm(cache, store, QueryName.PARTITIONS, owner_id="u1")
        accounts = await warm(cache, store, QueryName.ACCOUNTS, owner_id="u1")

        renamed = await service.update_partition(seeded["cash"].id, name="Wallet")

        assert renamed.name == "Wallet"
        assert cache.is_stale(partitions)
        assert not cache.is_stale(accounts)

    @pytest.mark.asyncio
    async def test_create_partition_refreshes_accounts(
        self, service, cache, store, seeded
    ):
        household = seeded["household"]
        deletable = await warm(
            cache, store, QueryName.ACCOUNT_CAN_BE_DELETED, account_id=household.id
        )

        await service.create_partition(household.id, "Envelope")

        assert cache.is_stale(deletable)

    @pytest.mark.asyncio
    async def test_delete_partition(self, service, data_service, seeded):
        await service.delete_partition(seeded["card"].id)
        assert seeded["card"].id not in data_service.partitions

    @pytest.mark.asyncio
    async def test_delete_partition_in_use_kept(
        self, service, cache, store, data_service, seeded
    ):
        """Without archive, a partition with transactions is left alone."""
        cash = seeded["cash"]
        await service.create_transaction(cash.id, seeded["groceries"].id, Decimal("5"))
        partitions = await warm(cache, store, QueryName.PARTITIONS, owner_id="u1")

        assert await service.delete_partition(cash.id) is False
        assert cash.id in data_service.partitions
        assert not cache.is_stale(partitions)

    @pytest.mark.asyncio
    async def test_archive_partition_in_use(
        self, service, cache, store, data_service, seeded
    ):
        cash = seeded["cash"]
        await service.create_transaction(cash.id, seeded["groceries"].id, Decimal("5"))
        partitions = await warm(cache, store, QueryName.PARTITIONS, owner_id="u1")

        assert await service.delete_partition(cash.id, archive=True) is True

        assert data_service.partitions[cash.id].is_archived
        assert cache.is_stale(partitions)
        assert cash not in await cache.fetch(partitions)

    @pytest.mark.asyncio
    async def test_update_requires_changes(self, service, seeded):
        with pytest.raises(ValidationError):
            await service.update_partition(seeded["cash"].id)
        with pytest.raises(ValidationError):
            await service.update_category(seeded["groceries"].id)
        with pytest.raises(ValidationError):
            await service.update_account(seeded["household"].id)

    @pytest.mark.asyncio
    async def test_category_lifecycle(self, service, cache, store, data_service):
        categories = await warm(cache, store, QueryName.CATEGORIES, owner_id="u1")

        category = await service.create_category("Books", CategoryKind.EXPENSE)
        assert cache.is_stale(categories)

        await cache.fetch(categories)
        await service.delete_category(category.id)
        assert cache.is_stale(categories)
        assert category.id not in data_service.categories

    @pytest.mark.asyncio
    async def test_rename_account(self, service, cache, store, seeded):
        partitions = await warm(cache, store, QueryName.PARTITIONS, owner_id="u1")

        await service.update_account(seeded["savings"].id, name="Rainy day")

        assert cache.is_stale(partitions)

    @pytest.mark.asyncio
    async def test_update_budget(self, service, cache, store, data_service, seeded):
        """Only the budgeted categories of the profile are refreshed."""
        profile = BudgetProfile("bp1", "Home")
        data_service.profiles[profile.id] = profile
        groceries = await warm(
            cache,
            store,
            QueryName.BUDGET_AMOUNT,
            category_id=seeded["groceries"].id,
            profile_id=profile.id,
        )
        salary = await warm(
            cache,
            store,
            QueryName.BUDGET_AMOUNT,
            category_id=seeded["salary"].id,
            profile_id=profile.id,
        )

        await service.update_budget(profile.id, {seeded["groceries"].id: Decimal("300")})

        assert cache.is_stale(groceries)
        assert not cache.is_stale(salary)
        assert await cache.fetch(groceries) == Decimal("300")

    @pytest.mark.asyncio
    async def test_create_budget_profile(self, service, cache, store, data_service):
        profiles = await warm(cache, store, QueryName.BUDGET_PROFILES, owner_id="u1")

        profile = await service.create_budget_profile(" Home ", ("p1", "p2"))

        assert profile.name == "Home"
        assert data_service.profiles[profile.id].partition_ids == ("p1", "p2")
        assert cache.is_stale(profiles)
        assert await cache.fetch(profiles) == [profile]

    @pytest.mark.asyncio
    async def test_budget_profile_name_required(self, service, data_service):
        with pytest.raises(ValidationError):
            await service.create_budget_profile("  ")
        assert data_service.profiles == {}

    @pytest.mark.asyncio
    async def test_update_budget_rejects_negative(self, service):
        with pytest.raises(ValidationError):
            await service.update_budget("bp1", {"c1": Decimal("-1")})
