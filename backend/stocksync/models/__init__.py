"""ORM Models — SQLAlchemy declarative models backing the keyed store.

Invariants:
    - All models inherit from Base (db/base.py)
    - One row per collection name; the row holds the whole record list

Design Decisions:
    - All models imported here so Base.metadata is complete before create_all
"""

from stocksync.models.collection import CollectionRecord  # noqa: F401
