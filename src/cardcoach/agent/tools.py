import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, Sequence

from ..services.redis import RedisCrudService
from .decision import get_best_card

logger = logging.getLogger(__name__)

ACCOUNT_KEY_PATTERN = "account:*"
TRANSACTIONS_KEY = "transactions:list"

CATEGORIES = ("fuel", "food", "groceries", "travel", "other")

NO_CREDIT_MESSAGE = "You don't have enough available credit on any single card for this purchase."

# Publicly advertised cashback rates, refreshed by hand.
MARKET_CARDS: List[Dict[str, Any]] = [
    {
        "name": "Citi Custom Cash",
        "cashback": {"fuel": 5, "food": 5, "groceries": 5, "travel": 5, "other": 1},
        "note": "5% on your top eligible category each billing cycle, up to $500 spent.",
    },
    {
        "name": "Blue Cash Preferred",
        "cashback": {"fuel": 3, "food": 1, "groceries": 6, "travel": 3, "other": 1},
        "note": "6% at U.S. supermarkets on up to $6,000 a year; annual fee applies.",
    },
    {
        "name": "Costco Anywhere Visa",
        "cashback": {"fuel": 4, "food": 3, "groceries": 1, "travel": 3, "other": 1},
        "note": "4% on eligible gas and EV charging on up to $7,000 a year.",
    },
    {
        "name": "Capital One Savor",
        "cashback": {"fuel": 1, "food": 3, "groceries": 3, "travel": 1, "other": 1},
        "note": "3% on dining, entertainment and grocery stores, no annual fee.",
    },
    {
        "name": "Chase Sapphire Preferred",
        "cashback": {"fuel": 1, "food": 3, "groceries": 1, "travel": 5, "other": 1},
        "note": "Points worth 5x on travel booked through the Chase portal.",
    },
    {
        "name": "Wells Fargo Active Cash",
        "cashback": {"fuel": 2, "food": 2, "groceries": 2, "travel": 2, "other": 2},
        "note": "Flat 2% on every purchase.",
    },
]


def _number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_money(value: float) -> str:
    """Format a dollar amount: `$350` for whole numbers, `$12.50` otherwise."""
    value = float(value)
    if value.is_integer():
        return f"${int(value)}"
    return f"${value:.2f}"


def normalize_category(category: Any) -> str:
    """Return category lower-cased if it is a known one, else `other`."""
    if isinstance(category, str) and category.strip().lower() in CATEGORIES:
        return category.strip().lower()
    return "other"


class FinanceTools:
    """Read-only tool handlers over the account and transaction records in Redis."""

    def __init__(self, redis_crud: RedisCrudService) -> None:
        self._redis = redis_crud

    async def load_accounts(self) -> List[Dict[str, Any]]:
        """Return every stored account, ordered by key.

        Raises:
            ValueError: a stored account is not valid JSON.
        """
        accounts: List[Dict[str, Any]] = []
        for key in await self._redis.keys(ACCOUNT_KEY_PATTERN):
            account = await self._redis.get_json(key)
            if account is None:
                # Key expired or was deleted between SCAN and GET.
                continue
            accounts.append(account)
        return accounts

    async def load_transactions(self) -> List[Dict[str, Any]]:
        """Return the stored transaction list, or [] if none was seeded."""
        transactions = await self._redis.get_json(TRANSACTIONS_KEY)
        if transactions is None:
            return []
        if not isinstance(transactions, list):
            raise ValueError(f"{TRANSACTIONS_KEY} must hold a JSON list")
        return transactions

    async def get_account_balance(self, account_names: Sequence[str]) -> Dict[str, str]:
        """Balances of accounts whose name or nickname contains any requested name."""
        if isinstance(account_names, str):
            account_names = [account_names]
        wanted = [str(n).strip().lower() for n in account_names if str(n).strip()]
        results: Dict[str, str] = {}
        for account in await self.load_accounts():
            name = str(account.get("name", ""))
            nickname = str(account.get("nickname") or "")
            if any(w in name.lower() or (nickname and w in nickname.lower()) for w in wanted):
                results[name] = format_money(account["balance"])
        return results

    async def check_affordability(
        self, item: str, amount: float, category: str = "other"
    ) -> Dict[str, Any]:
        """Recommend the card with the best cashback that can cover the purchase."""
        category = normalize_category(category)
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            return {"can_afford": False, "message": f"I couldn't read the price of {item}."}
        if amount <= 0:
            return {"can_afford": False, "message": "The purchase amount must be greater than zero."}

        best = get_best_card(await self.load_accounts(), category, amount)
        if best is None:
            return {"can_afford": False, "message": NO_CREDIT_MESSAGE}

        rate = _number(best.rate)
        return {
            "can_afford": True,
            "recommended_account": best.name,
            "cashback_rate": f"{rate}%",
            "available_after": format_money(best.available - amount),
            "reason": (
                f"The {best.name} offers the best cashback ({rate}%) for {category} "
                "and has sufficient credit."
            ),
        }

    async def get_market_card_recommendations(self, category: str) -> Dict[str, Any]:
        category = normalize_category(category)
        ranked = sorted(MARKET_CARDS, key=lambda c: c["cashback"][category], reverse=True)
        return {
            "category": category,
            "top_market_cards": [
                {
                    "name": card["name"],
                    "cashback": f"{_number(card['cashback'][category])}%",
                    "note": card["note"],
                }
                for card in ranked[:3]
            ],
        }

    async def get_financial_summary(self) -> Dict[str, Any]:
        """Owned cards plus positive spending totals per category."""
        accounts = await self.load_accounts()
        breakdown: Dict[str, float] = defaultdict(float)
        for txn in await self.load_transactions():
            try:
                amount = float(txn.get("amount", 0))
            except (TypeError, ValueError):
                logger.debug("Skipping transaction with unreadable amount: %s", json.dumps(txn))
                continue
            if amount > 0:
                breakdown[normalize_category(txn.get("category"))] += amount

        spending = {cat: round(total, 2) for cat, total in breakdown.items()}
        top_category = max(spending, key=spending.get) if spending else "none"
        return {
            "owned_cards": [
                {"name": a.get("name"), "limit": a.get("limit"), "balance": a.get("balance")}
                for a in accounts
            ],
            "spending_breakdown": spending,
            "top_category": top_category,
        }
