"""Assay processing and executors."""
