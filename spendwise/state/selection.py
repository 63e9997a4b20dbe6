"""Selection state and its reducer.

SelectionState is the user's current filter context: which partitions,
categories and loans are selected, the date window, pagination and the
balance display mode. reduce() is the only way to derive a new snapshot
from an old one; it is pure and never mutates its input.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Callable, Optional

from dateutil.relativedelta import relativedelta

from spendwise.domain.errors import InvariantViolation, ValidationError
from spendwise.state.actions import (
    Action,
    ClearCategorySelection,
    ClearLoanSelection,
    ClearPartitionSelection,
    RemoveLoanIds,
    SelectionField,
    SetCurrentPage,
    SetDateRange,
    SetDateRangeEnd,
    SetDateRangeStart,
    SetItemsPerPage,
    SetNextMonth,
    SetPrevMonth,
    SetSelectedCategoryId,
    SetSelectedDestinationId,
    SetSelectedSourceId,
    SetThisMonth,
    ToggleAccount,
    ToggleBudgetProfile,
    ToggleIds,
    ToggleOverallBalance,
)

logger = logging.getLogger(__name__)

DEFAULT_ITEMS_PER_PAGE = 25


@dataclass(frozen=True, slots=True)
class SelectionState:
    """Immutable snapshot of the current selection.

    Id collections are tuples: ordered (insertion order is kept for display)
    and free of duplicates.
    """

    partition_ids: tuple[str, ...] = ()
    category_ids: tuple[str, ...] = ()
    loan_ids: tuple[str, ...] = ()
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    items_per_page: int = DEFAULT_ITEMS_PER_PAGE
    current_page: int = 1
    show_overall_balance: bool = True
    active_budget_profile_id: Optional[str] = None
    # Form defaults for the transaction input
    selected_category_id: Optional[str] = None
    selected_source_id: Optional[str] = None
    selected_destination_id: Optional[str] = None


def month_bounds(d: date) -> tuple[date, date]:
    """Get the first and last day of the month containing d."""
    first = d.replace(day=1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return first, last


def initial_state(today: Optional[date] = None, **overrides: object) -> SelectionState:
    """Create the session's starting selection.

    Args:
        today: Reference date for the default month window (defaults to today)
        **overrides: Field values replacing the defaults

    Returns:
        SelectionState with empty selections, overall balance shown and the
        date range set to the current month
    """
    start, end = month_bounds(today or date.today())
    state = SelectionState(date_range_start=start, date_range_end=end)
    return replace(state, **overrides) if overrides else state


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _unique(ids: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


def _toggle_all(selected: tuple[str, ...], ids: tuple[str, ...]) -> tuple[str, ...]:
    """Batch toggle: remove all of ids if every one is selected, else add the missing."""
    if all(id in selected for id in ids):
        removed = set(ids)
        return tuple(id for id in selected if id not in removed)
    return selected + tuple(id for id in _unique(ids) if id not in selected)


def _require_positive_int(value: object, name: str) -> int:
    # bool is an int subclass; True must not be accepted as a page size
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


def _reset_page(state: SelectionState) -> SelectionState:
    return state if state.current_page == 1 else replace(state, current_page=1)


def _require_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError(f"Date range start {start} is after end {end}")


def _shift_month(state: SelectionState, months: int, today: date) -> SelectionState:
    anchor = state.date_range_start or today
    start, end = month_bounds(anchor + relativedelta(months=months))
    return replace(state, date_range_start=start, date_range_end=end, current_page=1)


# ---------------------------------------------------------------------------
# Action handlers
# ---------------------------------------------------------------------------


def _toggle_ids(state: SelectionState, action: ToggleIds, today: date) -> SelectionState:
    if action.field == SelectionField.PARTITIONS:
        if state.show_overall_balance:
            return _reset_page(state)
        return replace(
            state,
            partition_ids=_toggle_all(state.partition_ids, action.ids),
            active_budget_profile_id=None,
            selected_source_id=None,
            current_page=1,
        )

    if action.field == SelectionField.CATEGORIES:
        return replace(
            state,
            category_ids=_toggle_all(state.category_ids, action.ids),
            selected_category_id=None,
            current_page=1,
        )

    if action.field == SelectionField.LOANS:
        return replace(
            state,
            loan_ids=_toggle_all(state.loan_ids, action.ids),
            current_page=1,
        )

    raise ValidationError(f"Unknown selection field: {action.field!r}")


def _toggle_account(
    state: SelectionState, action: ToggleAccount, today: date
) -> SelectionState:
    if state.show_overall_balance:
        return _reset_page(state)
    return replace(
        state,
        partition_ids=_toggle_all(state.partition_ids, action.partition_ids),
        active_budget_profile_id=None,
        current_page=1,
    )


def _remove_loan_ids(
    state: SelectionState, action: RemoveLoanIds, today: date
) -> SelectionState:
    removed = set(action.ids)
    return replace(
        state,
        loan_ids=tuple(id for id in state.loan_ids if id not in removed),
        current_page=1,
    )


def _toggle_budget_profile(
    state: SelectionState, action: ToggleBudgetProfile, today: date
) -> SelectionState:
    # Overall balance is an unscoped view; a profile cannot be applied to it
    if state.show_overall_balance:
        return _reset_page(state)

    if state.active_budget_profile_id == action.profile_id:
        return replace(
            state, active_budget_profile_id=None, partition_ids=(), current_page=1
        )
    return replace(
        state,
        active_budget_profile_id=action.profile_id,
        partition_ids=_unique(action.partition_ids),
        current_page=1,
    )


def _set_date_range(
    state: SelectionState, action: SetDateRange, today: date
) -> SelectionState:
    _require_range(action.start, action.end)
    return replace(
        state, date_range_start=action.start, date_range_end=action.end, current_page=1
    )


def _set_date_range_start(
    state: SelectionState, action: SetDateRangeStart, today: date
) -> SelectionState:
    _require_range(action.start, state.date_range_end)
    return replace(state, date_range_start=action.start, current_page=1)


def _set_date_range_end(
    state: SelectionState, action: SetDateRangeEnd, today: date
) -> SelectionState:
    _require_range(state.date_range_start, action.end)
    return replace(state, date_range_end=action.end, current_page=1)


def _set_this_month(
    state: SelectionState, action: SetThisMonth, today: date
) -> SelectionState:
    start, end = month_bounds(today)
    return replace(state, date_range_start=start, date_range_end=end, current_page=1)


def _set_items_per_page(
    state: SelectionState, action: SetItemsPerPage, today: date
) -> SelectionState:
    items_per_page = _require_positive_int(action.items_per_page, "items_per_page")
    if action.reset_page:
        return replace(state, items_per_page=items_per_page, current_page=1)
    return replace(state, items_per_page=items_per_page)


def _set_current_page(
    state: SelectionState, action: SetCurrentPage, today: date
) -> SelectionState:
    return replace(state, current_page=_require_positive_int(action.page, "page"))


def _toggle_overall_balance(
    state: SelectionState, action: ToggleOverallBalance, today: date
) -> SelectionState:
    if state.show_overall_balance:
        return replace(state, show_overall_balance=False, current_page=1)
    return replace(
        state,
        show_overall_balance=True,
        partition_ids=(),
        active_budget_profile_id=None,
        current_page=1,
    )


_Handler = Callable[[SelectionState, Action, date], SelectionState]

_HANDLERS: dict[type, _Handler] = {
    ToggleIds: _toggle_ids,
    ToggleAccount: _toggle_account,
    RemoveLoanIds: _remove_loan_ids,
    ToggleBudgetProfile: _toggle_budget_profile,
    SetDateRange: _set_date_range,
    SetDateRangeStart: _set_date_range_start,
    SetDateRangeEnd: _set_date_range_end,
    SetPrevMonth: lambda state, action, today: _shift_month(state, -1, today),
    SetNextMonth: lambda state, action, today: _shift_month(state, 1, today),
    SetThisMonth: _set_this_month,
    SetItemsPerPage: _set_items_per_page,
    SetCurrentPage: _set_current_page,
    ToggleOverallBalance: _toggle_overall_balance,
    ClearPartitionSelection: lambda state, action, today: replace(
        state, partition_ids=(), active_budget_profile_id=None, current_page=1
    ),
    ClearCategorySelection: lambda state, action, today: replace(
        state, category_ids=(), current_page=1
    ),
    ClearLoanSelection: lambda state, action, today: replace(
        state, loan_ids=(), current_page=1
    ),
    SetSelectedCategoryId: lambda state, action, today: replace(
        state, selected_category_id=action.category_id
    ),
    SetSelectedSourceId: lambda state, action, today: replace(
        state, selected_source_id=action.partition_id
    ),
    SetSelectedDestinationId: lambda state, action, today: replace(
        state, selected_destination_id=action.partition_id
    ),
}


def reduce(
    state: SelectionState, action: Action, today: Optional[date] = None
) -> SelectionState:
    """Apply an action to a selection snapshot.

    Args:
        state: Current snapshot (left untouched)
        action: Action to apply
        today: Reference date for month navigation (defaults to today)

    Returns:
        The new snapshot. Partition scoping while the overall balance is
        shown only resets the page; state itself is returned when the page
        is already 1.

    Raises:
        ValidationError: If the action or its payload is malformed
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise ValidationError(f"Unknown action: {action!r}")
    return handler(state, action, today or date.today())


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def find_violations(state: SelectionState) -> list[str]:
    """List every invariant the snapshot breaks (empty if valid)."""
    violations = []

    if state.show_overall_balance and state.partition_ids:
        violations.append("partitions selected while overall balance is shown")
    if state.show_overall_balance and state.active_budget_profile_id is not None:
        violations.append("budget profile active while overall balance is shown")

    for name in ("partition_ids", "category_ids", "loan_ids"):
        ids = getattr(state, name)
        if len(set(ids)) != len(ids):
            violations.append(f"duplicate ids in {name}")

    if state.current_page < 1:
        violations.append(f"current_page {state.current_page} is below 1")
    if state.items_per_page < 1:
        violations.append(f"items_per_page {state.items_per_page} is below 1")

    start, end = state.date_range_start, state.date_range_end
    if start is not None and end is not None and start > end:
        violations.append(f"date range start {start} is after end {end}")

    return violations


def check_invariants(state: SelectionState) -> None:
    """Raise InvariantViolation if the snapshot breaks any invariant."""
    violations = find_violations(state)
    if violations:
        raise InvariantViolation(violations)


def normalize(state: SelectionState) -> SelectionState:
    """Return the nearest snapshot that satisfies every invariant."""
    changes: dict[str, object] = {}

    if state.show_overall_balance:
        if state.partition_ids:
            changes["partition_ids"] = ()
        if state.active_budget_profile_id is not None:
            changes["active_budget_profile_id"] = None

    for name in ("partition_ids", "category_ids", "loan_ids"):
        ids = changes.get(name, getattr(state, name))
        if len(set(ids)) != len(ids):
            changes[name] = _unique(ids)

    if state.current_page < 1:
        changes["current_page"] = 1
    if state.items_per_page < 1:
        changes["items_per_page"] = DEFAULT_ITEMS_PER_PAGE

    start, end = state.date_range_start, state.date_range_end
    if start is not None and end is not None and start > end:
        changes["date_range_start"], changes["date_range_end"] = end, start

    if not changes:
        return state

    logger.debug(f"Normalized selection fields: {sorted(changes)}")
    return replace(state, **changes)
