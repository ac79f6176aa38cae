"""Utility modules for the mill kernel."""
