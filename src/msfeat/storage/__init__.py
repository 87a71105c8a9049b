"""Scan and assay data storage implementations."""

from .memory import OnMemoryAssayStorage, OnMemoryScanStore

__all__ = ["OnMemoryAssayStorage", "OnMemoryScanStore"]
