"""
TagDB Test Suite.

This package contains:
- unit/: Unit tests (storage worker, gateway, snapshot merge, services)
- integration/: Integration tests (two stores exchanging snapshots, CLI)
"""
