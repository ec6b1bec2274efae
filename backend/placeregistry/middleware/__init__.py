"""
Place Registry Backend — Middleware Package
=============================================

Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Access Log] → [GZip] → [CORS] → Route
    Response ← same chain in reverse

    Rate limiting runs first so rejected requests cost nothing downstream;
    the access log runs inside the request id so every line carries it.
"""
