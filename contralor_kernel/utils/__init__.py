"""Utility functions for the contralor kernel."""
