"""Source repository registry."""
