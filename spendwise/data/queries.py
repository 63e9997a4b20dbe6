"""Query identities derived from the selection.

Every cached query is identified by a QueryKey: its name plus a frozen
parameter object. Parameter objects hold two kinds of fields:

- scope fields identify the entity the query is about (a partition, a
  category, the owning user) and are supplied by the caller;
- selection fields are copied from the SelectionState the query depends on.

A query's parameter class lists exactly the selection fields that change its
result, so keys differ when (and only when) the result may differ.
"""

from dataclasses import MISSING, dataclass, fields
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Optional

from spendwise.domain.errors import ValidationError
from spendwise.domain.models import CategoryKind
from spendwise.state.selection import SelectionState


class QueryName(str, Enum):
    """Names of the data-service read queries."""

    ACCOUNTS = "accounts"
    PARTITIONS = "partitions"
    CATEGORIES = "categories"
    PARTITION_BALANCE = "partitionBalance"
    ACCOUNT_BALANCE = "accountBalance"
    CATEGORY_BALANCE = "categoryBalance"
    CATEGORY_KIND_BALANCE = "categoryKindBalance"
    PARTITION_CAN_BE_DELETED = "partitionCanBeDeleted"
    ACCOUNT_CAN_BE_DELETED = "accountCanBeDeleted"
    CATEGORY_CAN_BE_DELETED = "categoryCanBeDeleted"
    BUDGET_PROFILES = "budgetProfiles"
    BUDGET_AMOUNT = "budgetAmount"
    PARTITIONS_WITH_LOANS = "partitionsWithLoans"
    UNPAID_LOANS = "unpaidLoans"
    TRANSACTIONS = "transactions"
    GROUPED_TRANSACTIONS = "groupedTransactions"


# Selection fields shared by several queries
_BALANCE_WINDOW = ("show_overall_balance", "date_range_start", "date_range_end")
_FILTERED_BALANCE_WINDOW = ("partition_ids",) + _BALANCE_WINDOW
_TRANSACTION_FILTERS = (
    "partition_ids",
    "category_ids",
    "loan_ids",
    "date_range_start",
    "date_range_end",
    "show_overall_balance",
)
# Id collections, sorted in keys
_ID_FIELDS = frozenset({"partition_ids", "category_ids", "loan_ids"})


@dataclass(frozen=True, slots=True)
class OwnerParams:
    """Listings scoped to the owning user (accounts, categories, ...)."""

    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("owner_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    owner_id: str


@dataclass(frozen=True, slots=True)
class PartitionsParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("owner_id", "account_id")
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    owner_id: str
    account_id: Optional[str] = None  # None lists the partitions of every account


@dataclass(frozen=True, slots=True)
class UnpaidLoansParams:
    """Unpaid loans lent by one partition."""

    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("owner_id", "partition_id")
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    owner_id: str
    partition_id: str


@dataclass(frozen=True, slots=True)
class PartitionParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("partition_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    partition_id: str


@dataclass(frozen=True, slots=True)
class AccountParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("account_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    account_id: str


@dataclass(frozen=True, slots=True)
class CategoryParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("category_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    category_id: str


@dataclass(frozen=True, slots=True)
class BudgetAmountParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("category_id", "profile_id")
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = ()

    category_id: str
    profile_id: str


@dataclass(frozen=True, slots=True)
class PartitionBalanceParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("partition_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = _BALANCE_WINDOW

    partition_id: str
    show_overall_balance: bool
    date_range_start: Optional[date]
    date_range_end: Optional[date]


@dataclass(frozen=True, slots=True)
class AccountBalanceParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("account_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = _BALANCE_WINDOW

    account_id: str
    show_overall_balance: bool
    date_range_start: Optional[date]
    date_range_end: Optional[date]


@dataclass(frozen=True, slots=True)
class CategoryBalanceParams:
    """Category balances are restricted to the selected partitions."""

    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("category_id",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = _FILTERED_BALANCE_WINDOW

    category_id: str
    partition_ids: tuple[str, ...]
    show_overall_balance: bool
    date_range_start: Optional[date]
    date_range_end: Optional[date]


@dataclass(frozen=True, slots=True)
class CategoryKindBalanceParams:
    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ("kind",)
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = _FILTERED_BALANCE_WINDOW

    kind: CategoryKind
    partition_ids: tuple[str, ...]
    show_overall_balance: bool
    date_range_start: Optional[date]
    date_range_end: Optional[date]


@dataclass(frozen=True, slots=True)
class TransactionsParams:
    """One page of the filtered transaction list."""

    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ()
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = (
        "current_page",
        "items_per_page",
    ) + _TRANSACTION_FILTERS

    current_page: int
    items_per_page: int
    partition_ids: tuple[str, ...]
    category_ids: tuple[str, ...]
    loan_ids: tuple[str, ...]
    date_range_start: Optional[date]
    date_range_end: Optional[date]
    show_overall_balance: bool


@dataclass(frozen=True, slots=True)
class GroupedTransactionsParams:
    """Filtered transactions aggregated for charts; not paginated."""

    SCOPE_FIELDS: ClassVar[tuple[str, ...]] = ()
    SELECTION_FIELDS: ClassVar[tuple[str, ...]] = _TRANSACTION_FILTERS

    partition_ids: tuple[str, ...]
    category_ids: tuple[str, ...]
    loan_ids: tuple[str, ...]
    date_range_start: Optional[date]
    date_range_end: Optional[date]
    show_overall_balance: bool


PARAMS_BY_NAME: dict[QueryName, type] = {
    QueryName.ACCOUNTS: OwnerParams,
    QueryName.PARTITIONS: PartitionsParams,
    QueryName.CATEGORIES: OwnerParams,
    QueryName.PARTITION_BALANCE: PartitionBalanceParams,
    QueryName.ACCOUNT_BALANCE: AccountBalanceParams,
    QueryName.CATEGORY_BALANCE: CategoryBalanceParams,
    QueryName.CATEGORY_KIND_BALANCE: CategoryKindBalanceParams,
    QueryName.PARTITION_CAN_BE_DELETED: PartitionParams,
    QueryName.ACCOUNT_CAN_BE_DELETED: AccountParams,
    QueryName.CATEGORY_CAN_BE_DELETED: CategoryParams,
    QueryName.BUDGET_PROFILES: OwnerParams,
    QueryName.BUDGET_AMOUNT: BudgetAmountParams,
    QueryName.PARTITIONS_WITH_LOANS: OwnerParams,
    QueryName.UNPAID_LOANS: UnpaidLoansParams,
    QueryName.TRANSACTIONS: TransactionsParams,
    QueryName.GROUPED_TRANSACTIONS: GroupedTransactionsParams,
}

# Selection fields each query depends on
QUERY_DEPENDENCIES: dict[QueryName, tuple[str, ...]] = {
    name: params_cls.SELECTION_FIELDS for name, params_cls in PARAMS_BY_NAME.items()
}


@dataclass(frozen=True, slots=True)
class QueryKey:
    """Identity of a cached query. Equal iff name and parameters are equal."""

    name: QueryName
    params: Any

    def __post_init__(self) -> None:
        expected = PARAMS_BY_NAME[self.name]
        if type(self.params) is not expected:
            raise ValidationError(
                f"{self.name.value} expects {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )

    @property
    def scope(self) -> dict[str, Any]:
        """Entity identity of the key, without selection-derived fields."""
        return {f: getattr(self.params, f) for f in self.params.SCOPE_FIELDS}

    def __str__(self) -> str:
        values = ", ".join(
            f"{f.name}={getattr(self.params, f.name)!r}" for f in fields(self.params)
        )
        return f"{self.name.value}({values})"


def derive_key(name: QueryName, state: SelectionState, **scope: Any) -> QueryKey:
    """Derive the key of a query for the given selection.

    Args:
        name: Query to derive the key for
        state: Current selection snapshot
        **scope: Entity identity (e.g. partition_id="p1", owner_id="u1")

    Returns:
        QueryKey whose parameters hold the scope plus exactly the selection
        fields the query depends on

    Raises:
        ValidationError: If a required scope field is missing or an
            unknown one is given

    Example:
        >>> derive_key(QueryName.PARTITION_BALANCE, state, partition_id="p1")
    """
    try:
        name = QueryName(name)
    except ValueError:
        raise ValidationError(f"Unknown query: {name!r}") from None
    params_cls = PARAMS_BY_NAME[name]

    unexpected = set(scope) - set(params_cls.SCOPE_FIELDS)
    if unexpected:
        raise ValidationError(f"{name.value} does not take {sorted(unexpected)}")

    required = [
        f.name
        for f in fields(params_cls)
        if f.name in params_cls.SCOPE_FIELDS and f.default is MISSING
    ]
    missing = [f for f in required if scope.get(f) is None]
    if missing:
        raise ValidationError(f"{name.value} requires {missing}")

    selection = {f: getattr(state, f) for f in params_cls.SELECTION_FIELDS}
    for f in _ID_FIELDS.intersection(selection):
        selection[f] = tuple(sorted(selection[f]))
    return QueryKey(name, params_cls(**scope, **selection))
