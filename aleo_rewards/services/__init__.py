"""Block source access and reward computation."""
