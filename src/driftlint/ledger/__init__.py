"""Storage for last-analyzed content fingerprints."""
