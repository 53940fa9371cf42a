from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Player:
    id: Optional[int]
    wallet_address: str
    username: Optional[str] = None
    last_login: Optional[datetime] = None


def normalize_wallet_address(raw: str | None) -> str:
    address = str(raw or "").strip()
    if not address:
        raise ValueError("Wallet address is required")
    return address
