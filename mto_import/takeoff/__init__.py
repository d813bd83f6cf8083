"""Takeoff file parsing and header resolution."""
