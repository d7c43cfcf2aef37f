"""Student directory backed by the principals table."""
