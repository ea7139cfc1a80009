"""Utility functions for the payables kernel."""
