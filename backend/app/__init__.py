"""
CustomTees Backend — Application Package Initializer
======================================================

What: Marks the `app` directory as a Python package.
Who:  Imported by uvicorn, Alembic and pytest (`from app.config import settings`).

Architecture Note:
    ┌─────────────────────────────────────┐
    │  Routes (API Layer)                 │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │  Services (Business Logic)          │  ← catalog, shipment, tracking,
    │                                     │    payments; UPS/Square/SendGrid clients
    ├─────────────────────────────────────┤
    │  Models & Schemas (Data)            │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Database (Persistence)             │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
