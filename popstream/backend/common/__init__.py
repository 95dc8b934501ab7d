"""Shared errors, logging and task helpers."""
