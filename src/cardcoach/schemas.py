from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    query: str = ""
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    session_id: Optional[str] = None
    tool_calls_count: int = 0


class AccountCreate(BaseModel):
    """Flat account form as posted by the dashboard's "add account" dialog."""

    name: str = Field(min_length=1)
    nickname: Optional[str] = None
    balance: float = Field(ge=0)
    limit: float = Field(gt=0)
    cashback_fuel: float = Field(default=0, ge=0)
    cashback_food: float = Field(default=0, ge=0)
    cashback_groceries: float = Field(default=0, ge=0)
    cashback_travel: float = Field(default=0, ge=0)
    cashback_other: float = Field(default=0, ge=0)

    def to_record(self, account_id: str) -> Dict[str, Any]:
        """Stored account shape: cashback rates nested under `cashback`."""
        return {
            "id": account_id,
            "name": self.name,
            "nickname": self.nickname or self.name,
            "balance": self.balance,
            "limit": self.limit,
            "cashback": {
                "fuel": self.cashback_fuel,
                "food": self.cashback_food,
                "groceries": self.cashback_groceries,
                "travel": self.cashback_travel,
                "other": self.cashback_other,
            },
        }
