"""API Layer — FastAPI command surface for the presentation layer.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Every operation returns a result or the structured error envelope

Design Decisions:
    - Thin routes delegate to InventoryEngine; no reservation logic in handlers
"""
