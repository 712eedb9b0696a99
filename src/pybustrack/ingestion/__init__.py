"""Ingestion layer.

Adapters that turn payloads published by driver clients into normalized
:class:`~pybustrack.models.snapshot.BusSnapshot` objects.
"""

__all__: list[str] = []
