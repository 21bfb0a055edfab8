"""State/store layer.

This package is the single owner of cached per-store snapshots: it merges
freshly analyzed readings into retained history, tracks staleness, and
persists entries through a pluggable key-value backend.
"""
