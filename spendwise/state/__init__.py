"""Selection state, actions and the reactive store."""
