"""
FastAPI REST backend for the library catalog.

This package provides:
- Book catalog browsing, creation and updates
- Book category lookup
- Per-user borrowed book records
- Cookie-based session tokens
"""
