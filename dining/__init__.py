"""
In-dining subsystem package.

Provides:
- Configuration & endpoints for the restaurant API and order websocket
- Core domain enums & models (orders, payment sessions)
- Typed event bus shared by the websocket client and its consumers
- Services for order reconciliation, payment sessions, payment status tracking,
  payment link acquisition and order history refresh
"""
