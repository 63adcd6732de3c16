"""
Backend package for the library fee tracker.

This package provides a FastAPI application with document-store, backup
and chat-provider abstractions so the same HTTP layer can run against
local files, a SQL database or in-memory test doubles.
"""
