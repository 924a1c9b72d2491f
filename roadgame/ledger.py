import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from . import settings
from .exceptions import InsufficientBalance, InvalidBetAmount, UnknownPlayer

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize to cents, rounding half up like the client does."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    return str(to_money(value))


@dataclass
class Player:
    player_id: str
    nickname: str
    balance: Decimal
    currency: str
    avatar: Optional[str] = None
    connection_id: Optional[str] = None

    def balance_event(self) -> dict:
        return {"currency": self.currency, "balance": format_money(self.balance)}


@dataclass(frozen=True)
class BalanceMovement:
    player_id: str
    currency: str
    amount: Decimal
    before: Decimal
    after: Decimal


class PlayerLedger:
    """Balances of every player seen since start-up.

    Only the game flow calls ``debit``/``credit``, always while holding the
    player's registry lock.
    """

    def __init__(self):
        self._players: Dict[str, Player] = {}
        self._guard = threading.Lock()

    def register(
        self,
        player_id: str,
        nickname: str | None = None,
        balance: Decimal | str | float | None = None,
        currency: str | None = None,
        avatar: str | None = None,
    ) -> Player:
        with self._guard:
            player = self._players.get(player_id)
            if player is None:
                player = Player(
                    player_id=player_id,
                    nickname=nickname or player_id,
                    balance=Decimal(str(balance)) if balance is not None else settings.DEFAULT_BALANCE,
                    currency=currency or settings.DEFAULT_CURRENCY,
                    avatar=avatar,
                )
                if player.balance < 0:
                    raise ValueError("Balance must not be negative")
                self._players[player_id] = player
                logger.info("Registered player %s (%s) with %s %s", player_id, player.nickname, player.balance, player.currency)
            else:
                # Returning players keep their balance and its currency; only the profile is refreshed.
                if nickname:
                    player.nickname = nickname
                if currency and currency != player.currency:
                    logger.warning(
                        "Ignoring currency change for %s: balance is held in %s, not %s",
                        player_id, player.currency, currency,
                    )
                if avatar is not None:
                    player.avatar = avatar
            return player

    def get(self, player_id: str) -> Player:
        player = self._players.get(player_id)
        if player is None:
            raise UnknownPlayer()
        return player

    def find(self, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def players(self) -> List[Player]:
        with self._guard:
            return list(self._players.values())

    def __len__(self) -> int:
        return len(self._players)

    def total_balance(self) -> Decimal:
        with self._guard:
            balances = [p.balance for p in self._players.values()]
        return sum(balances, Decimal("0"))

    def debit(self, player_id: str, amount: Decimal) -> BalanceMovement:
        player = self.get(player_id)
        if amount <= 0:
            raise InvalidBetAmount()
        if player.balance < amount:
            raise InsufficientBalance()
        before = player.balance
        player.balance = before - amount
        return BalanceMovement(player_id, player.currency, -amount, before, player.balance)

    def credit(self, player_id: str, amount: Decimal) -> BalanceMovement:
        player = self.get(player_id)
        if amount < 0:
            raise InvalidBetAmount("Credit must not be negative")
        before = player.balance
        player.balance = before + amount
        return BalanceMovement(player_id, player.currency, amount, before, player.balance)
