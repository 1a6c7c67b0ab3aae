"""Adapters - implementations of the lifecycle ports."""
