"""Invalidation planning for cached queries.

Balances are derived by aggregating transactions, so one mutation makes a
whole web of cached views stale: category and category-kind balances, the
balances and deletability of the partitions involved and of their accounts,
list-level caches, and for loans the lender's unpaid loans and the list of
partitions with loans.

plan_invalidations() maps each MutationResult variant to the complete set
of stale queries. It is the single table that has to change when a new
derived view is added.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from spendwise.data.queries import QueryKey, QueryName
from spendwise.domain.mutations import (
    AccountChanged,
    BudgetProfileCreated,
    BudgetProfileToggled,
    CategoryChanged,
    CategoryRef,
    ChangeKind,
    LoanCreated,
    LoanPaymentMade,
    MutationResult,
    PartitionChanged,
    PartitionRef,
    TransactionCreated,
    TransactionDeleted,
    TransactionUpdated,
)
from spendwise.state.actions import Action, RemoveLoanIds


class MatchPolicy(Enum):
    """How an invalidation selects cached keys."""

    EXACT = "exact"  # Keys whose entity scope equals the invalidation's scope
    ANY = "any"  # Every parameterization of the query name


@dataclass(frozen=True, slots=True)
class Invalidation:
    """A cached-query pattern that must be refreshed.

    scope holds (field, value) pairs compared against the key's scope
    fields. Selection-derived parameters (date range, overall mode, ...)
    never take part in matching: every window of a stale balance is stale.
    """

    name: QueryName
    scope: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def any(cls, name: QueryName) -> "Invalidation":
        """Match every parameterization of name."""
        return cls(name)

    @classmethod
    def scoped(cls, name: QueryName, **scope: Any) -> "Invalidation":
        """Match keys of name whose scope fields equal scope."""
        return cls(name, tuple(sorted(scope.items())))

    @property
    def policy(self) -> MatchPolicy:
        return MatchPolicy.EXACT if self.scope else MatchPolicy.ANY

    def matches(self, key: QueryKey) -> bool:
        """Check if a cached key is covered by this invalidation."""
        if key.name != self.name:
            return False
        key_scope = key.scope
        return all(
            field in key_scope and key_scope[field] == value
            for field, value in self.scope
        )

    def __str__(self) -> str:
        if not self.scope:
            return f"{self.name.value}(*)"
        values = ", ".join(f"{field}={value!r}" for field, value in self.scope)
        return f"{self.name.value}({values})"


def _list_caches() -> set[Invalidation]:
    # Filter-parameterized lists: every parameterization is stale
    return {
        Invalidation.any(QueryName.TRANSACTIONS),
        Invalidation.any(QueryName.GROUPED_TRANSACTIONS),
    }


def _category_caches(category: CategoryRef) -> set[Invalidation]:
    return {
        Invalidation.scoped(QueryName.CATEGORY_BALANCE, category_id=category.category_id),
        Invalidation.scoped(
            QueryName.CATEGORY_CAN_BE_DELETED, category_id=category.category_id
        ),
        Invalidation.scoped(QueryName.CATEGORY_KIND_BALANCE, kind=category.kind),
    }


def _partition_caches(partition: Optional[PartitionRef]) -> set[Invalidation]:
    """Balances and deletability of a partition and its owning account."""
    if partition is None:
        return set()
    return {
        Invalidation.scoped(
            QueryName.PARTITION_BALANCE, partition_id=partition.partition_id
        ),
        Invalidation.scoped(
            QueryName.PARTITION_CAN_BE_DELETED, partition_id=partition.partition_id
        ),
        Invalidation.scoped(QueryName.ACCOUNT_BALANCE, account_id=partition.account_id),
        Invalidation.scoped(
            QueryName.ACCOUNT_CAN_BE_DELETED, account_id=partition.account_id
        ),
    }


def _loan_caches(owner_id: str, lender_partition_id: str) -> set[Invalidation]:
    return {
        Invalidation.scoped(
            QueryName.UNPAID_LOANS, owner_id=owner_id, partition_id=lender_partition_id
        ),
        Invalidation.scoped(QueryName.PARTITIONS_WITH_LOANS, owner_id=owner_id),
    }


def _transaction_caches(
    category: CategoryRef,
    source: PartitionRef,
    counterpart: Optional[PartitionRef],
) -> set[Invalidation]:
    return (
        _list_caches()
        | _category_caches(category)
        | _partition_caches(source)
        | _partition_caches(counterpart)
    )


def _plan_transaction(
    result: TransactionCreated | TransactionUpdated | TransactionDeleted,
) -> set[Invalidation]:
    planned = _transaction_caches(result.category, result.source, result.counterpart)

    previous = getattr(result, "previous_category", None)
    if previous is not None:
        planned |= _category_caches(previous)
    planned |= _partition_caches(getattr(result, "previous_source", None))
    planned |= _partition_caches(getattr(result, "previous_counterpart", None))

    if result.loan is not None:
        planned |= _loan_caches(result.owner_id, result.loan.lender_partition_id)
    elif getattr(result, "deleted_loan_id", None) is not None:
        # A loan origin was lent by its own source partition
        planned |= _loan_caches(result.owner_id, result.source.partition_id)

    return planned


def _plan_loan(result: LoanCreated | LoanPaymentMade) -> set[Invalidation]:
    return _transaction_caches(
        result.category, result.lender, result.borrower
    ) | _loan_caches(result.owner_id, result.lender.partition_id)


def _plan_partition(result: PartitionChanged) -> set[Invalidation]:
    owner_id = result.owner_id
    planned = _list_caches() | {
        Invalidation.scoped(QueryName.PARTITIONS, owner_id=owner_id),
        # Partition labels are shown in the loan lists
        Invalidation.scoped(
            QueryName.UNPAID_LOANS,
            owner_id=owner_id,
            partition_id=result.partition.partition_id,
        ),
        Invalidation.scoped(QueryName.PARTITIONS_WITH_LOANS, owner_id=owner_id),
    }
    if result.change != ChangeKind.UPDATED:
        planned |= {
            Invalidation.scoped(QueryName.ACCOUNTS, owner_id=owner_id),
            Invalidation.scoped(
                QueryName.ACCOUNT_CAN_BE_DELETED,
                account_id=result.partition.account_id,
            ),
        }
    return planned


def _plan_category(result: CategoryChanged) -> set[Invalidation]:
    return _list_caches() | {
        Invalidation.scoped(QueryName.CATEGORIES, owner_id=result.owner_id)
    }


def _plan_account(result: AccountChanged) -> set[Invalidation]:
    return _list_caches() | {
        Invalidation.scoped(QueryName.ACCOUNTS, owner_id=result.owner_id),
        # Account names are part of partition labels
        Invalidation.scoped(QueryName.PARTITIONS, owner_id=result.owner_id),
    }


def _plan_budget_profile(result: BudgetProfileToggled) -> set[Invalidation]:
    planned = {
        Invalidation.scoped(
            QueryName.BUDGET_AMOUNT,
            category_id=category_id,
            profile_id=result.profile_id,
        )
        for category_id in result.category_ids
    }
    planned.add(Invalidation.scoped(QueryName.BUDGET_PROFILES, owner_id=result.owner_id))
    return planned


def _plan_budget_profile_created(result: BudgetProfileCreated) -> set[Invalidation]:
    return {Invalidation.scoped(QueryName.BUDGET_PROFILES, owner_id=result.owner_id)}


_PLANNERS: dict[type, Callable[[Any], set[Invalidation]]] = {
    TransactionCreated: _plan_transaction,
    TransactionUpdated: _plan_transaction,
    TransactionDeleted: _plan_transaction,
    LoanCreated: _plan_loan,
    LoanPaymentMade: _plan_loan,
    PartitionChanged: _plan_partition,
    CategoryChanged: _plan_category,
    AccountChanged: _plan_account,
    BudgetProfileToggled: _plan_budget_profile,
    BudgetProfileCreated: _plan_budget_profile_created,
}


def plan_invalidations(result: MutationResult) -> frozenset[Invalidation]:
    """Compute every cached query made stale by a successful mutation.

    Args:
        result: Description of the completed mutation

    Returns:
        Invalidation patterns for the caching layer to apply. Branches whose
        optional references are missing (e.g. no counterpart) are omitted.

    Example:
        >>> plan_invalidations(transaction_created("u1", transaction))
        frozenset({Invalidation(name=<QueryName.TRANSACTIONS: ...>, scope=()), ...})
    """
    planner = _PLANNERS.get(type(result))
    if planner is None:
        raise TypeError(f"Not a mutation result: {result!r}")
    return frozenset(planner(result))


def matching_keys(
    invalidations: Iterable[Invalidation], keys: Iterable[QueryKey]
) -> list[QueryKey]:
    """Filter keys down to those covered by any of the invalidations."""
    invalidations = list(invalidations)
    return [key for key in keys if any(inv.matches(key) for inv in invalidations)]


def selection_followups(result: MutationResult) -> list[Action]:
    """Selection actions that keep the store consistent after a mutation.

    A loan deleted along with its origin transaction no longer exists, so it
    is dropped from the loan selection.
    """
    if isinstance(result, TransactionDeleted) and result.deleted_loan_id is not None:
        return [RemoveLoanIds((result.deleted_loan_id,))]
    return []
