"""
Scheduled completion of community votes.

- **completion_scheduler.py**: min-heap of one-shot completion jobs served by
  a single background task, plus the reconciliation sweep that completes any
  overdue vote found in the store. Completion itself is idempotent, so the
  two paths may overlap freely.
"""
