"""Core package: configuration, logging and security helpers."""
