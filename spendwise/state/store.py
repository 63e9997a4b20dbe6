"""Reactive selection store with Qt signal integration.

SelectionStore owns the session's SelectionState and is the only place it
changes. Every change goes through dispatch(), which runs the pure reducer,
checks invariants and notifies listeners through a Qt signal.
"""

import logging
from datetime import date
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from spendwise.data.queries import QueryKey, QueryName, derive_key
from spendwise.domain.errors import InvariantViolation
from spendwise.domain.settings import AppSettings
from spendwise.state.actions import Action
from spendwise.state.selection import (
    SelectionState,
    find_violations,
    initial_state,
    normalize,
    reduce,
)

logger = logging.getLogger(__name__)


class SelectionStore(QObject):
    """Owned, exclusively mutated selection state for one user session.

    In strict mode an invariant violation raises InvariantViolation and the
    previous snapshot is kept. Otherwise the violation is logged and the
    nearest valid snapshot is stored instead.

    Example:
        >>> store = SelectionStore()
        >>> store.changed.connect(lambda s: print(s.current_page))
        >>> store.dispatch(SetCurrentPage(3))  # Prints: 3
    """

    changed = Signal(object)  # Emitted with the new SelectionState

    def __init__(
        self,
        initial: Optional[SelectionState] = None,
        *,
        strict: bool = False,
        clock: Callable[[], date] = date.today,
        parent: Optional[QObject] = None,
    ):
        """Initialize the store.

        Args:
            initial: Starting snapshot. Defaults to initial_state() for today.
            strict: Raise on invariant violations instead of normalizing
            clock: Returns today's date; used by month navigation
            parent: Optional Qt parent object
        """
        super().__init__(parent)
        self._clock = clock
        self._strict = strict
        self._state = initial if initial is not None else initial_state(clock())

    @property
    def state(self) -> SelectionState:
        """Get the current snapshot."""
        return self._state

    @property
    def strict(self) -> bool:
        return self._strict

    def dispatch(self, action: Action) -> SelectionState:
        """Apply an action and return the resulting snapshot.

        Args:
            action: Action to apply

        Returns:
            The current snapshot after the action

        Raises:
            ValidationError: If the action payload is malformed (state unchanged)
            InvariantViolation: In strict mode, if the result breaks an
                invariant (state unchanged)
        """
        new_state = reduce(self._state, action, self._clock())

        if new_state is self._state:
            logger.debug(f"Ignored {type(action).__name__}: not applicable")
            return self._state

        violations = find_violations(new_state)
        if violations:
            if self._strict:
                raise InvariantViolation(violations)
            logger.warning(
                f"{type(action).__name__} produced an invalid selection "
                f"({'; '.join(violations)}); normalizing"
            )
            new_state = normalize(new_state)

        logger.debug(f"Dispatched {type(action).__name__}")
        self._set(new_state)
        return self._state

    def subscribe(self, callback: Callable[[SelectionState], None]) -> None:
        """Subscribe to selection changes.

        Args:
            callback: Function called with the new snapshot when it changes
        """
        self.changed.connect(callback)

    def query_key(self, name: QueryName, **scope: object) -> QueryKey:
        """Derive the key of a query from the current snapshot."""
        return derive_key(name, self._state, **scope)

    def _set(self, new_state: SelectionState) -> None:
        if new_state != self._state:
            self._state = new_state
            self.changed.emit(new_state)

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        clock: Callable[[], date] = date.today,
        parent: Optional[QObject] = None,
    ) -> "SelectionStore":
        """Create a store seeded with the persisted UI state."""
        initial = initial_state(
            clock(),
            show_overall_balance=settings.ui_state.show_overall_balance,
            items_per_page=settings.ui_state.items_per_page,
        )
        return cls(
            initial,
            strict=settings.store.strict_invariants,
            clock=clock,
            parent=parent,
        )

    def save_to(self, settings: AppSettings) -> None:
        """Copy the persistable part of the selection into settings."""
        settings.ui_state.show_overall_balance = self._state.show_overall_balance
        # Settings cap the persisted page size at 500
        settings.ui_state.items_per_page = min(self._state.items_per_page, 500)
