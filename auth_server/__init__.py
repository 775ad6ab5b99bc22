"""Trak Library authentication server."""
