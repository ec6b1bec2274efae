# Services package init
"""
Place Registry Backend — Services Layer
=========================================

Service Inventory:
    - PlaceService:     record lifecycle (create, read, list, update, delete, moderate)
    - SlugAllocator:    unique URL slugs derived from place names
    - schedule_service: raw opening hours → canonical rows → display lines
    - AssetReconciler:  logo/cover defaults, staged upload relocation, cleanup
    - FileService:      validated local file storage
    - Notifier:         e-mail to admins and owners
    - attempt():        runs best-effort side effects

Everything below PlaceService is usable without a database session and is
unit-tested on its own.
"""
