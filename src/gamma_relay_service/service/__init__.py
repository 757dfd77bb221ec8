"""Scanning, orchestration and history reporting."""
