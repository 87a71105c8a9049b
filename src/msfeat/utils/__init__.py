"""Numerical utilities."""
