"""
Treasury Kernel - money request approval core.

A transactional approval workflow for church funding requests with:
- Template-driven, sequential approval chains
- Role-gated step advancement
- Status derived from chain state, never written directly
- Append-only status history and notification outbox
"""

__version__ = "0.1.0"
