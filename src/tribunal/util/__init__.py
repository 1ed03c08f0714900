"""
Utility functions and helpers for Tribunal.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Uses prompt_toolkit
  for non-blocking console I/O.

- **format_utils.py**: Human-readable durations and text truncation.
"""
