# Routes package init
"""
Place Registry Backend — API Routes Package
=============================================

Route Inventory:
    - places.py:   /api/places CRUD, lookup by slug, moderation
    - uploads.py:  POST /api/uploads, GET /uploads/{path}
    - health.py:   GET /health

Routes stay thin: resolve the caller, call a service, shape the response.
Business rules live in services.
"""
