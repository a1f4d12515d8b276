"""
docarchive Test Suite.

This package contains:
- unit/: Unit tests (selectors, transform, config, stores, policy)
- integration/: Integration tests (engine on both stores, CLI on SQLite)
"""
