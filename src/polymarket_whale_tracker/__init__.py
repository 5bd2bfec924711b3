"""Polymarket Whale Tracker - Real-time detection of unusually large trades."""

__version__ = "0.1.0"
