"""Configuration for popstream."""
