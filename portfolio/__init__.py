"""Portfolio profile service (accounts, follows and user-owned records)."""
