from __future__ import annotations

import logging
from typing import Optional

from hearthgate.domain.models.player import Player, normalize_wallet_address
from hearthgate.domain.repositories import PlayerRepository


logger = logging.getLogger(__name__)


class PlayerService:
    def __init__(self, player_repo: PlayerRepository) -> None:
        self.player_repo = player_repo

    def login(self, wallet_address: str, username: Optional[str] = None) -> Player:
        address = normalize_wallet_address(wallet_address)
        existed = self.player_repo.get_by_wallet(address) is not None
        player = self.player_repo.get_or_create_by_wallet(address, username=username)
        logger.info("Player login", extra={"player_id": player.id, "new_player": not existed})
        return player
