import sys
from pathlib import Path
from typing import Dict

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))


class MemoryRedisCrud:
    """In-memory stand-in for RedisCrudService (get/set/delete, TTL recorded)."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int | None] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        self.data[key] = value
        self.ttls[key] = ttl_seconds
        return True

    async def delete(self, key: str) -> bool:
        self.data.pop(key, None)
        return True


@pytest.fixture
def memory_redis() -> MemoryRedisCrud:
    return MemoryRedisCrud()
