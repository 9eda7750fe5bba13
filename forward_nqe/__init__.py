"""
Forward Networks NQE catalog sync client.

This package provides:
- A resilient request executor (retry, backoff, error classification, cancellation)
- Incremental, commit-aware sync of the org and fwd NQE query repositories
- Plain network/device/snapshot/location API wrappers
- Local JSON storage of the synced query catalog
"""
