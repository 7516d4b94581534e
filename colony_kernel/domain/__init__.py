"""Pure domain logic for the colony kernel (no I/O)."""
