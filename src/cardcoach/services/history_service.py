import json
import logging
from typing import Any, Dict

from ..models import ConversationHistory, Turn
from ..services.redis import RedisCrudService

logger = logging.getLogger(__name__)

HISTORY_KEY_PREFIX = "history:"
DEFAULT_WINDOW = 20
DEFAULT_TTL_SECONDS = 3600


def _history_to_dict(session_id: str, history: ConversationHistory) -> Dict[str, Any]:
    """Serialize a ConversationHistory to a JSON-serializable dict."""
    return {
        "session_id": session_id,
        "turns": [turn.to_dict() for turn in history.turns],
    }


def _dict_to_history(data: Dict[str, Any]) -> ConversationHistory:
    """Build a ConversationHistory from a dict (e.g. from Redis)."""
    turns = data["turns"]
    if not isinstance(turns, list):
        raise TypeError("turns must be a list")
    return ConversationHistory(turns=tuple(Turn.from_dict(t) for t in turns))


class HistoryStore:
    """Bounded per-session conversation history kept in Redis with a TTL."""

    def __init__(
        self,
        redis_crud: RedisCrudService,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        window: int = DEFAULT_WINDOW,
    ) -> None:
        self._redis = redis_crud
        self._ttl = ttl_seconds
        self._window = window

    def _key(self, session_id: str) -> str:
        return f"{HISTORY_KEY_PREFIX}{session_id}"

    async def load(self, session_id: str) -> ConversationHistory:
        """Load history for session_id. Missing or unreadable data gives an empty history."""
        try:
            raw = await self._redis.get(self._key(session_id))
            if raw is None:
                return ConversationHistory()
            history = _dict_to_history(json.loads(raw))
        except (
            UnicodeDecodeError,
            json.JSONDecodeError,
            KeyError,
            TypeError,
            ValueError,
            RecursionError,
        ) as e:
            logger.warning("Corrupt history for %s, starting fresh: %s", session_id, e)
            return ConversationHistory()
        return history.windowed(self._window)

    async def save(self, session_id: str, history: ConversationHistory) -> bool:
        """Overwrite the stored history with its newest turns. Returns True on success."""
        bounded = history.windowed(self._window)
        try:
            payload = json.dumps(_history_to_dict(session_id, bounded))
        except (TypeError, ValueError) as e:
            logger.warning("History serialization failed for %s: %s", session_id, e)
            return False
        return await self._redis.set(self._key(session_id), payload, ttl_seconds=self._ttl)

    async def clear(self, session_id: str) -> bool:
        """Remove stored history for session_id. Returns True on success."""
        return await self._redis.delete(self._key(session_id))
