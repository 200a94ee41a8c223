"""Services Layer — ledger, spot index, catalog, history and sync coordination.

Invariants:
    - Every write spanning collections runs inside CollectionLocks.hold()
    - Services never compute reservation or merge rules themselves (core/ does)

Design Decisions:
    - One service per concern, composed by InventoryEngine
"""
