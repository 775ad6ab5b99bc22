"""
Core shared utilities for the Trak authentication server.

- errors: API error hierarchy and Flask error handlers
- db: SQLite connection management
"""
