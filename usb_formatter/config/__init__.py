"""Configuration for the formatter."""
