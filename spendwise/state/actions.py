"""Actions accepted by the selection store.

Every user interaction that changes the selection is expressed as one of
these immutable payloads and dispatched through SelectionStore.dispatch().
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional, Union

from spendwise.domain.errors import ValidationError


def _as_ids(ids: Iterable[str]) -> tuple[str, ...]:
    """Coerce an id payload to a tuple, rejecting a bare string."""
    if isinstance(ids, str):
        raise ValidationError(f"Expected a sequence of ids, got string {ids!r}")
    result = tuple(ids)
    for id in result:
        if not isinstance(id, str) or not id:
            raise ValidationError(f"Invalid id {id!r}")
    return result


class SelectionField(Enum):
    """Id collections that support batch toggling."""

    PARTITIONS = "partition_ids"
    CATEGORIES = "category_ids"
    LOANS = "loan_ids"


@dataclass(frozen=True, slots=True)
class ToggleIds:
    """All selected => deselect all, else select the missing ones."""

    field: SelectionField
    ids: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", _as_ids(self.ids))


@dataclass(frozen=True, slots=True)
class ToggleAccount:
    """Toggle the partitions of one account (resolved by the caller)."""

    partition_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "partition_ids", _as_ids(self.partition_ids))


@dataclass(frozen=True, slots=True)
class RemoveLoanIds:
    """Drop loans from the selection, e.g. after they were deleted."""

    ids: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", _as_ids(self.ids))


@dataclass(frozen=True, slots=True)
class ToggleBudgetProfile:
    profile_id: str
    partition_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.profile_id, str) or not self.profile_id:
            raise ValidationError(f"Invalid budget profile id {self.profile_id!r}")
        object.__setattr__(self, "partition_ids", _as_ids(self.partition_ids))


@dataclass(frozen=True, slots=True)
class SetDateRange:
    start: Optional[date]
    end: Optional[date]


@dataclass(frozen=True, slots=True)
class SetDateRangeStart:
    start: Optional[date]


@dataclass(frozen=True, slots=True)
class SetDateRangeEnd:
    end: Optional[date]


@dataclass(frozen=True, slots=True)
class SetPrevMonth:
    pass


@dataclass(frozen=True, slots=True)
class SetNextMonth:
    pass


@dataclass(frozen=True, slots=True)
class SetThisMonth:
    pass


@dataclass(frozen=True, slots=True)
class SetItemsPerPage:
    """Change the page size.

    The current page is kept unless reset_page is set.
    """

    items_per_page: int
    reset_page: bool = False


@dataclass(frozen=True, slots=True)
class SetCurrentPage:
    page: int


@dataclass(frozen=True, slots=True)
class ToggleOverallBalance:
    pass


@dataclass(frozen=True, slots=True)
class ClearPartitionSelection:
    pass


@dataclass(frozen=True, slots=True)
class ClearCategorySelection:
    pass


@dataclass(frozen=True, slots=True)
class ClearLoanSelection:
    pass


@dataclass(frozen=True, slots=True)
class SetSelectedCategoryId:
    category_id: Optional[str]


@dataclass(frozen=True, slots=True)
class SetSelectedSourceId:
    partition_id: Optional[str]


@dataclass(frozen=True, slots=True)
class SetSelectedDestinationId:
    partition_id: Optional[str]


Action = Union[
    ToggleIds,
    ToggleAccount,
    RemoveLoanIds,
    ToggleBudgetProfile,
    SetDateRange,
    SetDateRangeStart,
    SetDateRangeEnd,
    SetPrevMonth,
    SetNextMonth,
    SetThisMonth,
    SetItemsPerPage,
    SetCurrentPage,
    ToggleOverallBalance,
    ClearPartitionSelection,
    ClearCategorySelection,
    ClearLoanSelection,
    SetSelectedCategoryId,
    SetSelectedSourceId,
    SetSelectedDestinationId,
]
