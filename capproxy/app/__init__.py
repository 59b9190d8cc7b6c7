"""
Capability Proxy Application
============================

FastAPI service that forwards requests to upstream origins on behalf of
clients holding a signed capability token.

Packages:
    - auth:   token verification, path patterns and the authorization policy
    - proxy:  header filtering, upstream forwarding and the HTTP routes

Modules:
    - config:  environment-driven settings
    - errors:  exception hierarchy mapped to client-visible error bodies
    - models:  pydantic models for claims and JSON responses
    - main:    application factory and server entry point
"""
