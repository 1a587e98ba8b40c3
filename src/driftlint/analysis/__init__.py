"""Analysis client, result validation and line-drift reconciliation."""
