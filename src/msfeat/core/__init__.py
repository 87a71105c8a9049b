"""msfeat core data models and utilities."""
