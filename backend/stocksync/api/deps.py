"""Route Dependencies — access to the per-process InventoryEngine.

Invariants:
    - The engine is built once in the lifespan and stored on app.state
    - Routes receive it through Depends(get_engine); tests override this dependency
    - X-Actor header (optional) names the user recorded in history
"""

from fastapi import Header, Request

from stocksync.services.inventory_engine import InventoryEngine


def get_engine(request: Request) -> InventoryEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Inventory engine not initialized")
    return engine


def get_actor(x_actor: str | None = Header(None, max_length=100)) -> str | None:
    return x_actor.strip() if x_actor and x_actor.strip() else None
