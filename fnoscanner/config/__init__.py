"""Configuration for the FnO Scanner."""
