"""Pydantic Schemas — request/response validation for API endpoints.

Invariants:
    - Schemas validate at system boundary (presentation commands, API responses)
    - Core works on plain dicts; schemas never cross into services

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
