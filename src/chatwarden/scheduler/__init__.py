"""
Periodic background tasks.

- **maintenance_scheduler.py**: Autosaves the warning store and trims the
  deduplication ledger on a fixed interval.
- **polling_fallback.py**: Periodically fetches recent group messages and
  enqueues any the real-time listener missed.
"""
