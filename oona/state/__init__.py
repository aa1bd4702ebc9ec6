"""Per-browser state containers."""
