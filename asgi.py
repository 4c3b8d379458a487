"""
asgi.py -- Application assembly for Vaultroom.

This is the ONLY file that imports from both api/ and realtime/routes. It
joins the HTTP API and the WebSocket endpoint into a single ASGI app without
coupling them to each other. api/main.py knows nothing about the /ws route;
realtime/routes.py finds the hub and stores on app.state at connect time.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app
from realtime.routes import router as realtime_router

# Mount the WebSocket router here, not in api/main.py.
app.include_router(realtime_router, tags=["Realtime"])
