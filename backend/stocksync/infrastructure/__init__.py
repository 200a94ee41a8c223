"""Infrastructure Layer — persistence, remote client and cross-cutting concerns.

Invariants:
    - Library exceptions are mapped to core/errors.py at this boundary
    - All network calls carry a timeout and are cancellable

Design Decisions:
    - Thin adapters implementing core/repository_protocols.py
"""
