"""
CLI tools for docarchive administration.

This module provides command-line tools for:
- insert/find: Inspect and seed collections
- archive/restore/delete: Run the archive engine against a SQLite store

Invariants:
    - Tools work offline against a local database file
    - Every command is a single transaction
"""

from .cli import build_parser, main, run

__all__ = ["build_parser", "main", "run"]
