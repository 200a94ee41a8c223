"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic; records are returned as new copies

Design Decisions:
    - Functional core separated from imperative shell: services load records
      through KeyedStore, apply core functions, and write the results back
"""
