"""Utilities to create simulated data."""
