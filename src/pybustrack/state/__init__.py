"""Trip reconciliation layer.

This package is the single place where bus snapshots are turned into the
canonical per-bus trip state and the notification events derived from it.
"""
