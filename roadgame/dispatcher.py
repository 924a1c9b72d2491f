"""
Tagged-action entry point for a player's connection.

``GameService.handle`` answers on the reply channel (its return value) and
emits balance changes on a separate notification channel (the ``notify``
callable), so the client can update the game view and the wallet view
independently.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from . import settings
from .difficulty import DIFFICULTIES, game_config
from .exceptions import GameAlreadyActive, GameError, NoActiveSession, NoMovesYet, UnknownPlayer
from .fairness import OutcomeGenerator
from .feed import random_last_win
from .game import RoadGame, error_state
from .journal import Journal
from .ledger import BalanceMovement, Player, PlayerLedger, format_money
from .registry import SessionRegistry
from .schemas import BalanceChange, BetPayload

logger = logging.getLogger(__name__)

Notify = Callable[[str, dict], None]

BALANCE_EVENT = "onBalanceChange"
LAST_WIN_EVENT = "gameService-last-win"
ABANDON_POLICIES = ("forfeit", "refund")


@dataclass
class _Effects:
    """Side effects collected under the player lock, flushed after it."""

    movements: List[Tuple[BalanceMovement, str, Optional[str]]] = field(default_factory=list)
    finished: List[Tuple[RoadGame, str]] = field(default_factory=list)
    logs: List[Tuple[str, dict, Optional[str]]] = field(default_factory=list)


class GameService:
    def __init__(
        self,
        ledger: Optional[PlayerLedger] = None,
        registry: Optional[SessionRegistry] = None,
        generator: Optional[OutcomeGenerator] = None,
        journal: Optional[Journal] = None,
        abandon_policy: str | None = None,
        last_win: Callable[[str], dict] = random_last_win,
    ):
        self.ledger = ledger or PlayerLedger()
        self.registry = registry or SessionRegistry()
        self.generator = generator or OutcomeGenerator()
        self.journal = journal
        self.abandon_policy = abandon_policy or settings.ABANDON_POLICY
        if self.abandon_policy not in ABANDON_POLICIES:
            raise ValueError(f"Unknown abandon policy: {self.abandon_policy}")
        self.last_win = last_win
        self._handlers = {
            "get-game-config": self._get_game_config,
            "get-game-state": self._get_game_state,
            "bet": self._bet,
            "step": self._step,
            "withdraw": self._withdraw,
        }

    # -- connection lifecycle -------------------------------------------------

    def connect(self, player_id: str, connection_id: str) -> List[Tuple[str, dict]]:
        """Attach a connection and return the events pushed right after it opens."""
        with self.registry.locked(player_id):
            player = self.ledger.register(player_id)
            player.connection_id = connection_id
        logger.info("Player %s (%s) connected as %s", player_id, player.nickname, connection_id)
        cfg = settings.currency_config(player.currency)
        return [
            (BALANCE_EVENT, player.balance_event()),
            ("betsRanges", {player.currency: [cfg["minBetAmount"], cfg["maxBetAmount"]]}),
            ("betsConfig", {player.currency: {**cfg, "decimalPlaces": None}}),
            ("myData", {"userId": player.player_id, "nickname": player.nickname, "gameAvatar": player.avatar}),
        ]

    def disconnect(self, player_id: str, connection_id: str) -> Optional[RoadGame]:
        """Release the player's running round, if this is still their live connection."""
        effects = _Effects()
        with self.registry.locked(player_id):
            player = self.ledger.find(player_id)
            if player is None or player.connection_id != connection_id:
                return None
            player.connection_id = None
            game = self.registry.end(player_id)
            if game is not None:
                if self.abandon_policy == "refund":
                    movement = self.ledger.credit(player_id, game.bet_amount)
                    effects.movements.append((movement, "refund", game.session_id))
                effects.finished.append((game, "abandoned"))
                effects.logs.append(("abandon", {"policy": self.abandon_policy, "line": game.current_line}, game.session_id))
        if game is not None:
            logger.info("Player %s left game %s on line %s (%s)", player_id, game.session_id, game.current_line, self.abandon_policy)
        else:
            logger.info("Player %s disconnected", player_id)
        self._flush(player, effects, None)
        return game

    # -- dispatch ---------------------------------------------------------------

    def handle(self, player_id: str, action: str, payload=None, notify: Optional[Notify] = None) -> Optional[dict]:
        handler = self._handlers.get(action)
        if handler is None:
            logger.info("Ignoring unknown action %r from %s", action, player_id)
            return None
        if payload is not None and not isinstance(payload, dict):
            logger.warning("Malformed %s payload from %s: %r", action, player_id, payload)
            return None

        effects = _Effects()
        with self.registry.locked(player_id):
            try:
                player = self.ledger.get(player_id)
            except UnknownPlayer:
                logger.warning("Action %s for unknown player %s", action, player_id)
                return None
            try:
                reply = handler(player, payload or {}, effects)
            except ValidationError as exc:
                logger.warning("Malformed %s payload from %s: %s", action, player_id, exc.errors())
                return None
        self._flush(player, effects, notify)
        return reply

    def _flush(self, player: Optional[Player], effects: _Effects, notify: Optional[Notify]) -> None:
        for movement, _, _ in effects.movements:
            if notify is not None:
                notify(BALANCE_EVENT, BalanceChange(currency=movement.currency, balance=format_money(movement.after)).model_dump())
        if self.journal is None:
            return
        for movement, kind, session_id in effects.movements:
            self.journal.record_movement(movement, kind, session_id)
        for game, result in effects.finished:
            self.journal.record_round(game, result)
        for action, detail, session_id in effects.logs:
            self.journal.log_game_event(player, action, detail, session_id)

    # -- actions ----------------------------------------------------------------

    def _get_game_config(self, player: Player, payload: dict, effects: _Effects) -> dict:
        return game_config(self.last_win(player.currency))

    def _get_game_state(self, player: Player, payload: dict, effects: _Effects) -> Optional[dict]:
        game = self.registry.get(player.player_id)
        return game.snapshot().to_wire() if game is not None else None

    def _bet(self, player: Player, payload: dict, effects: _Effects) -> dict:
        bet = BetPayload.model_validate(payload)
        running = self.registry.get(player.player_id)
        if running is not None:
            logger.info("Rejected bet from %s: game %s still running", player.player_id, running.session_id)
            state = running.snapshot()
            state.error = str(GameAlreadyActive())
            return state.to_wire()
        amount = bet.bet_amount
        if amount is None:
            amount = settings.currency_config(player.currency)["defaultBetAmount"]
        difficulty = bet.difficulty or settings.DEFAULT_DIFFICULTY
        try:
            game = RoadGame.create(
                self.ledger,
                self.generator,
                player.player_id,
                amount,
                difficulty,
                bet.currency,
            )
        except GameError as exc:
            logger.info("Rejected bet from %s: %s", player.player_id, exc)
            return error_state(str(exc), player.currency, difficulty, pending=True).to_wire()
        self.registry.begin(player.player_id, game)
        effects.movements.append((game.opening, "bet", game.session_id))
        effects.logs.append(("bet", {"amount": str(game.bet_amount), "difficulty": game.difficulty.name}, game.session_id))
        return game.snapshot().to_wire()

    def _step(self, player: Player, payload: dict, effects: _Effects) -> dict:
        game = self.registry.get(player.player_id)
        if game is None:
            return error_state(str(NoActiveSession()), player.currency).to_wire()
        try:
            state = game.step()
        except GameError as exc:
            self.registry.end(player.player_id)
            return error_state(str(exc), player.currency).to_wire()
        if game.is_finished:
            self._finish(game, effects)
        return state.to_wire()

    def _withdraw(self, player: Player, payload: dict, effects: _Effects) -> dict:
        game = self.registry.get(player.player_id)
        if game is None:
            return error_state("No active game session found for withdrawal", player.currency).to_wire()
        try:
            state = game.withdraw()
        except NoMovesYet as exc:
            # Nothing walked yet: the round stays in play.
            logger.info("Rejected withdraw from %s: %s", player.player_id, exc)
            state = game.snapshot()
            state.error = str(exc)
            return state.to_wire()
        except GameError as exc:
            self.registry.end(player.player_id)
            return error_state(str(exc), player.currency, game.difficulty.name).to_wire()
        self._finish(game, effects)
        return state.to_wire()

    def _finish(self, game: RoadGame, effects: _Effects) -> None:
        self.registry.end(game.player_id)
        if game.settlement is not None:
            effects.movements.append((game.settlement, "payout", game.session_id))
        result = "win" if game.is_win else "lose"
        effects.finished.append((game, result))
        effects.logs.append(("finish", {"result": result, "line": game.current_line, "payout": str(game.payout)}, game.session_id))

    # -- reporting --------------------------------------------------------------

    def stats(self) -> dict:
        games = self.registry.active_games()
        by_difficulty = Counter({name: 0 for name in DIFFICULTIES})
        by_difficulty.update(g.difficulty.name for g in games)
        return {
            "totalUsers": len(self.ledger),
            "activeGames": len(games),
            "gamesByDifficulty": dict(by_difficulty),
            "totalBalance": format_money(self.ledger.total_balance()),
            "activeSessions": [
                {
                    "userId": g.player_id,
                    "sessionId": g.session_id,
                    "difficulty": g.difficulty.name,
                    "currentLine": g.current_line,
                    "betAmount": format_money(g.bet_amount),
                    "currency": g.currency,
                    "isFinished": g.is_finished,
                    "duration": g.stats()["duration"],
                }
                for g in games
            ],
        }

    def game_info(self) -> Dict[str, object]:
        return {
            "gameMode": settings.GAME_MODE,
            "connectedUsers": sum(1 for p in self.ledger.players() if p.connection_id),
            "activeSessions": len(self.registry),
            "gameConfig": game_config(self.last_win(settings.DEFAULT_CURRENCY)),
        }
