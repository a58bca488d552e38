"""Broker API clients."""
