"""Playback session orchestration for peer-to-peer media streaming."""

__version__ = "0.1.0"
