"""Token lifecycle services."""
