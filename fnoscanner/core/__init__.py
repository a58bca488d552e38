"""Core runtime loops."""
