"""Configuration and logging for the repair desk API."""
