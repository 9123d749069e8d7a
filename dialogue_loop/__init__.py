"""Unattended dialogue presentation loop fed from a remote scenario queue."""
