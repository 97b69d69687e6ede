"""
CustomTees Backend — Services Layer
=====================================

What:  Business logic between routes (HTTP) and the database.

Service Inventory:
    Domain
    - catalog_service:     casual and DTF product CRUD, slugs, gallery images
    - template_service:    garment template CRUD
    - shipment_service:    label purchase and carrier handoff
    - tracking_service:    tracking normalization, persistence, sync loop
    - shipping_service:    checkout quotes
    - payment_service:     Square checkout verification
    - order_lifecycle:     order loading, legal status pairs, commit-then-email

    Integrations
    - ups_service:          UPS OAuth, rating, transit, shipping, tracking
    - square_service:       Square payments/orders (read only)
    - notification_service: SendGrid emails
    - file_service:         upload validation, local storage, label PDFs
    - circuit_breaker:      fail-fast guard used by ups_service

Each module ends with a singleton; services take their collaborators as
optional constructor arguments so tests can pass fakes.
"""
