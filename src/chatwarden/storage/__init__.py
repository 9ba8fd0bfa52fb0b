"""
State kept by the moderation engine.

- **warning_store.py**: Durable identity -> strike count mapping.
- **dedup_ledger.py**: Bounded record of processed message identifiers.
"""
