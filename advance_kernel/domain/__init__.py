"""Pure domain value objects for the advance kernel (zero I/O)."""
