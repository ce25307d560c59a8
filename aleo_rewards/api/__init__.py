"""Read-only HTTP API over recorded rewards."""
