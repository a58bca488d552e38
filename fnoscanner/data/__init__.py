"""Indicator maths and the market data cache."""
