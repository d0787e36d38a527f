"""
Advance Kernel

Shared foundation for the cash-advance lifecycle:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clock for deterministic timestamps
- Workflow value objects (states, transitions, role gates)
- SQLAlchemy declarative base and engine helpers
"""

__version__ = "0.1.0"
