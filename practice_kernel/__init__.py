"""
Practice Kernel - shared infrastructure for the practice-automation system.

Provides the pieces every higher-level package builds on:
- Declarative ORM base with UUID keys and audit columns
- Engine / session management with per-operation units of work
- Structured JSON logging with request-scoped context
- Injectable clock
- Typed exception hierarchy with machine-readable codes
"""

__version__ = "0.1.0"
