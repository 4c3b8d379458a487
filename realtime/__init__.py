"""
realtime/ -- In-process WebSocket layer for live vault updates.

  hub.py     RealtimeHub: connection registry, per-vault rooms, join checks.
  events.py  Best-effort emitters called by source routes after a write.
  routes.py  The /ws endpoint: handshake authentication and the frame loop.

Layer rule: may import from auth/, core/ and vaults/. Never from api/ --
asgi.py mounts routes.py next to the API router.
"""
