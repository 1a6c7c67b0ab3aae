"""Domain layer - container specs, error taxonomy and lifecycle services."""
