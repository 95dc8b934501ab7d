"""Command line entry points for popstream."""
