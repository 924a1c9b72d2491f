import logging
import time
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from . import settings
from .difficulty import DifficultyProfile, get_difficulty
from .exceptions import (
    AlreadyFinished,
    BetOutOfRange,
    CurrencyMismatch,
    InsufficientBalance,
    InvalidBetAmount,
    NoMovesYet,
    UnknownDifficulty,
)
from .fairness import OutcomeGenerator
from .ledger import BalanceMovement, PlayerLedger, format_money, to_money
from .schemas import GameState

logger = logging.getLogger(__name__)


def parse_bet_amount(raw) -> Decimal:
    try:
        amount = to_money(raw)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidBetAmount()
    if not amount.is_finite() or amount <= 0:
        raise InvalidBetAmount()
    return amount


def enforce_bet_limits(currency: str, bet_amount: Decimal) -> None:
    cfg = settings.currency_config(currency)
    if bet_amount < Decimal(cfg["minBetAmount"]) or bet_amount > Decimal(cfg["maxBetAmount"]):
        raise BetOutOfRange(
            f"Bet amount must be between {cfg['minBetAmount']} and {cfg['maxBetAmount']} {currency}"
        )


class RoadGame:
    """One round: the player walks line by line until a crash, a cash-out or the end of the road.

    ``current_line`` is -1 right after the bet.  Stepping onto line
    ``crash_line`` loses; reaching ``total_lines`` without crashing pays the
    last rung of the ladder.
    """

    def __init__(
        self,
        ledger: Optional[PlayerLedger],
        player_id: str,
        bet_amount: Decimal,
        difficulty: DifficultyProfile,
        currency: str,
        crash_line: int,
        seed: Optional[int] = None,
        rng_name: str = "lcg",
    ):
        if not 1 <= crash_line <= difficulty.total_lines + 1:
            raise ValueError(f"crash_line {crash_line} outside 1..{difficulty.total_lines + 1}")
        self.ledger = ledger
        self.player_id = player_id
        self.bet_amount = bet_amount
        self.difficulty = difficulty
        self.currency = currency
        self.crash_line = crash_line
        self.seed = seed
        self.rng_name = rng_name
        self.current_line = -1
        self.is_finished = False
        self.is_win = False
        self.created_at = datetime.utcnow()
        self.started = time.monotonic()
        self.session_id = f"game_{player_id}_{uuid.uuid4().hex[:12]}"
        self.opening: Optional[BalanceMovement] = None
        self.settlement: Optional[BalanceMovement] = None

    @classmethod
    def create(
        cls,
        ledger: PlayerLedger,
        generator: OutcomeGenerator,
        player_id: str,
        bet_amount,
        difficulty: str,
        currency: str | None = None,
    ) -> "RoadGame":
        """Validate, debit the wager and commit the crash line.

        Nothing is debited unless every check passes.
        """
        amount = parse_bet_amount(bet_amount)
        profile = get_difficulty(difficulty)
        player = ledger.get(player_id)
        if currency and currency != player.currency:
            raise CurrencyMismatch()
        currency = player.currency
        if player.balance < amount:
            raise InsufficientBalance()
        enforce_bet_limits(currency, amount)

        seed, crash_line = generator.commit(player_id, profile)
        game = cls(ledger, player_id, amount, profile, currency, crash_line, seed, generator.rng_name)
        game.opening = ledger.debit(player_id, amount)
        logger.info(
            "Game %s created for %s: %s %s on %s, crash line %s",
            game.session_id, player_id, amount, currency, profile.name, crash_line,
        )
        return game

    @property
    def coefficient(self) -> Decimal:
        return self.difficulty.coefficient(self.current_line)

    @property
    def payout(self) -> Decimal:
        if self.is_finished and not self.is_win:
            return Decimal("0.00")
        return to_money(self.bet_amount * self.coefficient)

    def next_crash_chance(self) -> float:
        if self.is_finished:
            return 0
        return max(self.difficulty.crash_chance(self.current_line + 1), 0.0)

    def step(self) -> GameState:
        if self.is_finished:
            raise AlreadyFinished()
        self.current_line += 1

        if self.current_line >= self.crash_line:
            self.is_finished = True
            self.is_win = False
            logger.info("Game %s: %s crashed on line %s", self.session_id, self.player_id, self.current_line)
        elif self.current_line >= self.difficulty.total_lines:
            self.is_finished = True
            self.is_win = True
            self._settle()
            logger.info("Game %s: %s crossed all %s lines", self.session_id, self.player_id, self.current_line)
        else:
            logger.debug("Game %s: %s advanced to line %s", self.session_id, self.player_id, self.current_line)
        return self.snapshot()

    def withdraw(self) -> GameState:
        if self.is_finished:
            raise AlreadyFinished()
        if self.current_line < 0:
            raise NoMovesYet()
        self.is_finished = True
        self.is_win = True
        self._settle()
        logger.info(
            "Game %s: %s cashed out on line %s for %s",
            self.session_id, self.player_id, self.current_line, self.payout,
        )
        return self.snapshot()

    def _settle(self) -> None:
        # The wager was taken at creation; a win only credits the payout.
        if self.ledger is not None:
            self.settlement = self.ledger.credit(self.player_id, self.payout)

    def snapshot(self) -> GameState:
        return GameState(
            value="init" if self.is_finished else "game",
            session_id=self.session_id,
            is_finished=self.is_finished,
            is_win=self.is_win,
            currency=self.currency,
            bet_amount=format_money(self.bet_amount),
            coeff=format_money(self.coefficient),
            win_amount=format_money(self.payout),
            difficulty=self.difficulty.name,
            line_number=self.current_line,
            total_lines=self.difficulty.total_lines,
            crash_line=self.crash_line if self.is_finished else None,
            next_crash_chance=self.next_crash_chance(),
        )

    def stats(self) -> dict:
        return {
            "sessionId": self.session_id,
            "duration": int((time.monotonic() - self.started) * 1000),
            "totalSteps": self.current_line,
            "finalCoefficient": float(self.coefficient),
            "crashLine": self.crash_line,
            "winAmount": format_money(self.payout) if self.is_win else "0.00",
        }


def error_state(
    error: str,
    currency: str,
    difficulty: str | None = None,
    pending: bool = False,
) -> GameState:
    """Placeholder state sent with an error so the client can still render.

    ``pending`` marks a failed bet (nothing started yet); otherwise the state
    reads as a finished round.
    """
    try:
        profile = get_difficulty(difficulty)
    except UnknownDifficulty:
        profile = get_difficulty(settings.DEFAULT_DIFFICULTY)
    return GameState(
        value="init",
        session_id=None,
        is_finished=not pending,
        is_win=False,
        currency=currency,
        bet_amount="0.00",
        coeff="1.00",
        win_amount="0.00",
        difficulty=profile.name,
        line_number=-1 if pending else 0,
        total_lines=profile.total_lines,
        crash_line=None,
        next_crash_chance=profile.base_crash_chance,
        error=error,
    )
