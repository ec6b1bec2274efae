"""
Place Registry Backend — Application Package Initializer
==========================================================

What: Directory backend for local businesses, associations and events.
      This package owns the place record lifecycle: slug allocation,
      moderation status, weekly opening hours and media reconciliation.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Lifecycle, slugs, schedules, assets
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
