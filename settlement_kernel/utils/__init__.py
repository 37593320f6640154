"""Utility functions for the settlement kernel."""
