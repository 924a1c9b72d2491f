from decimal import Decimal

import pytest

from roadgame.dispatcher import GameService
from roadgame.fairness import OutcomeGenerator
from roadgame.ledger import PlayerLedger


class ScriptedDraws:
    """Draws that crash exactly on ``crash_line`` (never when it is past the track)."""

    def __init__(self, crash_line: int):
        self.crash_line = crash_line
        self.line = 0

    def random(self) -> float:
        self.line += 1
        return 0.0 if self.line == self.crash_line else 0.999


def scripted_generator(crash_line: int) -> OutcomeGenerator:
    return OutcomeGenerator(rng_factory=lambda seed: ScriptedDraws(crash_line), rng_name="scripted")


@pytest.fixture
def ledger():
    book = PlayerLedger()
    book.register("p1", nickname="Player One", balance=Decimal("100.00"), currency="USD")
    return book


@pytest.fixture
def make_service(ledger):
    def _make(crash_line: int = 5, **kwargs) -> GameService:
        return GameService(ledger=ledger, generator=scripted_generator(crash_line), last_win=lambda c: None, **kwargs)

    return _make


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, name, body):
        self.events.append((name, body))


@pytest.fixture
def notify():
    return Recorder()
