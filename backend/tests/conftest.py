"""Root conftest — shared test configuration."""

import os

# Ensure tests never talk to a real sync server or the developer's database
os.environ.setdefault("SESSION_TOKEN", "test-fake-session-token")
os.environ.setdefault("SYNC_ENDPOINT_URL", "http://sync.test/api/sync")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
