from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GameRequest(WireModel):
    action: str
    payload: Optional[Any] = None


class BetPayload(WireModel):
    bet_amount: Optional[Decimal] = None
    difficulty: Optional[str] = None
    currency: Optional[str] = None


class GameState(WireModel):
    value: Literal["game", "init"]
    session_id: Optional[str]
    is_finished: bool
    is_win: bool
    currency: str
    bet_amount: str
    coeff: str
    win_amount: str
    difficulty: str
    line_number: int
    total_lines: int
    crash_line: Optional[int]
    next_crash_chance: float
    error: Optional[str] = None

    def to_wire(self) -> dict:
        data = self.model_dump(by_alias=True)
        if data["error"] is None:
            del data["error"]
        return data


class BalanceChange(WireModel):
    currency: str
    balance: str


class LastWin(WireModel):
    username: str
    avatar: Optional[str] = None
    country_code: str
    win_amount: str
    currency: str


class AuthRequest(WireModel):
    user_id: Optional[str] = Field(default=None, min_length=1, max_length=64, pattern=r"^[^:]+$")
    nickname: Optional[str] = None
    balance: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    avatar: Optional[str] = None


class PlayerItem(WireModel):
    user_id: str
    nickname: str
    balance: str
    currency: str
    game_avatar: Optional[str] = None


class AuthResponse(WireModel):
    token: str
    user: PlayerItem


class SimulationRequest(WireModel):
    bet_amount: Decimal = Field(default=Decimal("1"), gt=0)
    difficulty: str = "EASY"
    steps: int = Field(default=5, ge=0, le=100)


class RoundVerification(WireModel):
    session_id: str
    player_id: str
    difficulty: str
    seed: Optional[str]
    rng: str
    stored_crash_line: int
    replayed_crash_line: Optional[int]
    verified: bool
    finished_at: datetime
