"""
Database-backed background job queue.

This package provides:
- A durable job store with conditional (compare-and-set) state transitions
- A worker pool that claims jobs without row locks
- Registry-based handlers keyed by name
- Cooldown-based retries and lease recovery for orphaned claims
"""
