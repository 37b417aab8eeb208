"""Ingestion layer.

This package contains the store adapters that fetch/receive data from the
realtime database and the normalizer that turns raw payloads into typed
records.
"""

__all__: list[str] = []
