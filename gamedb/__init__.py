"""
Wild GameDB catalog core.

Layered the same way as the rest of the project:

  gamedb/repositories/ - pure I/O: SQLAlchemy queries against one model each.
  gamedb/services/     - business logic: validation, diffing, transactions.

``Catalog`` (in ``catalog.py``) is the integration point: it creates one
service instance per entity kind and exposes the operations the web layer
calls.  Every service method takes the SQLAlchemy session as its first
argument so the caller owns the session lifecycle.
"""
