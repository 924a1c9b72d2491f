import json
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .database import SessionLocal
from .game import RoadGame
from .ledger import BalanceMovement, Player

logger = logging.getLogger(__name__)


class Journal:
    """Audit trail of rounds, balance movements and player actions.

    Writes happen after the player's lock is released.  A failed write is
    logged and does not undo the in-memory state the player already saw.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _write(self, *rows) -> None:
        try:
            with self.session_factory() as db:
                db.add_all(rows)
                db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to write %d audit row(s)", len(rows))

    def log_game_event(
        self,
        player: Optional[Player],
        action: str,
        detail: dict | str,
        session_id: str | None = None,
    ) -> None:
        detail_str = (
            json.dumps(detail, ensure_ascii=False, default=str)
            if isinstance(detail, (dict, list))
            else str(detail)
        )
        self._write(
            models.GameLog(
                player_id=player.player_id if player else None,
                nickname=player.nickname if player else None,
                session_id=session_id,
                action=action,
                detail=detail_str,
            )
        )

    def record_movement(self, movement: BalanceMovement, kind: str, session_id: str | None = None) -> None:
        self._write(
            models.Transaction(
                player_id=movement.player_id,
                session_id=session_id,
                type=kind,
                currency=movement.currency,
                amount=movement.amount,
                before_balance=movement.before,
                after_balance=movement.after,
            )
        )

    def record_round(self, game: RoadGame, result: str) -> None:
        self._write(
            models.GameRound(
                session_id=game.session_id,
                player_id=game.player_id,
                difficulty=game.difficulty.name,
                currency=game.currency,
                bet_amount=game.bet_amount,
                seed=str(game.seed) if game.seed is not None else None,
                rng=game.rng_name,
                crash_line=game.crash_line,
                line_number=game.current_line,
                result=result,
                payout_multiplier=game.coefficient if game.is_win else 0,
                payout_amount=game.payout if game.is_win else 0,
                started_at=game.created_at,
                finished_at=datetime.utcnow(),
            )
        )
