from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


@dataclass(frozen=True)
class BestCard:
    name: str
    rate: float
    available: float


def cashback_rate(account: Dict[str, Any], category: str) -> float:
    """Cashback rate for category; a missing or zero rate falls back to `other`."""
    cashback = account.get("cashback") or {}
    rate = cashback.get(category) or cashback.get("other") or 0
    return float(rate)


def get_best_card(
    accounts: Iterable[Dict[str, Any]], category: str, amount: float
) -> Optional[BestCard]:
    """Pick the card with the highest cashback for category that can cover amount.

    Only cards whose available credit (limit - balance) is at least amount are
    considered. The first card wins a tie. Returns None when no card qualifies.
    """
    best: Optional[BestCard] = None
    for account in accounts:
        available = float(account["limit"]) - float(account["balance"])
        if available < amount:
            continue
        rate = cashback_rate(account, category)
        if best is None or rate > best.rate:
            best = BestCard(name=str(account["name"]), rate=rate, available=available)
    return best
