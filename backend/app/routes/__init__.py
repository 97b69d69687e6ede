"""
CustomTees Backend — API Routes Package
=========================================

What:  HTTP route handlers. Each module owns one mounted prefix.

Route Inventory:
    - casual_products.py: /api/casual-products  (public reads, admin CRUD, ≤ 12 images)
    - dtf_products.py:    /api/dtf-products     (public reads, admin CRUD, 1 image)
    - templates.py:       /api/templates        (public list, admin CRUD, 1 image)
    - shipments.py:       /api/shipment         (admin: create-label, handoff)
    - tracking.py:        /api/tracking         (order tracking, public lookup, admin sync)
    - shipping.py:        /api/shipping         (signed-in: rate, transit, options)
    - payments.py:        /api/payments         (signed-in: square/verify)
    - files.py:           /api/files/{path}     (stored images and label PDFs)
    - health.py:          /health

Routes stay thin: parse the request, call a service, wrap the result in the
{"success": true, "data": ...} envelope. Business rules live in services.
"""
