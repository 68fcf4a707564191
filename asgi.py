"""
asgi.py -- Application assembly for Gatehouse.

This is the ONLY file that imports both the API app and the web UI router.
api/main.py knows nothing about web/routes.py; web/routes.py knows nothing
about api/.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
