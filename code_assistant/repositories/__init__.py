"""Storage implementations of the persistence port."""
