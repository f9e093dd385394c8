"""Dock-Pulse: keyboard-driven terminal dashboard for a Docker engine."""

__version__ = "0.1.0"
