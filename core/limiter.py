"""
core/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware, attached to app.state) and by
the route modules in api/ and web/ that apply per-route limits with
@limiter.limit(). One shared instance means one counter store; a limiter per
module would give each module its own counters and limits would never trip.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
