"""
Proxy Package
=============

This package forwards authorized requests to their target origin and relays
the upstream response back to the client.

Main Components:
----------------
- headers.py: header filtering in both directions
- forwarder.py: upstream request execution (httpx)
- routes.py: FastAPI router with the preflight and catch-all proxy endpoints

Usage:
------
    from capproxy.app.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
