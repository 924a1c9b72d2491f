from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from roadgame import models
from roadgame.database import Base, make_engine
from roadgame.dispatcher import BALANCE_EVENT, GameService
from roadgame.journal import Journal


SNAPSHOT_KEYS = {
    "value",
    "sessionId",
    "isFinished",
    "isWin",
    "currency",
    "betAmount",
    "coeff",
    "winAmount",
    "difficulty",
    "lineNumber",
    "totalLines",
    "crashLine",
    "nextCrashChance",
}


def bet(service, notify=None, amount="1.00", difficulty="EASY", player="p1"):
    return service.handle(player, "bet", {"betAmount": amount, "difficulty": difficulty, "currency": "USD"}, notify)


def test_unknown_action_is_a_no_op(make_service, ledger, notify):
    service = make_service()
    assert service.handle("p1", "dance", {"x": 1}, notify) is None
    assert notify.events == []
    assert ledger.get("p1").balance == Decimal("100.00")


def test_malformed_payloads_are_ignored(make_service, ledger, notify):
    service = make_service()
    assert service.handle("p1", "bet", ["1.00", "EASY"], notify) is None
    assert service.handle("p1", "bet", {"betAmount": "lots"}, notify) is None
    assert notify.events == []
    assert ledger.get("p1").balance == Decimal("100.00")
    assert service.handle("p1", "get-game-state") is None


def test_unknown_player_gets_no_reply(make_service):
    service = make_service()
    assert service.handle("ghost", "step") is None


def test_game_config():
    service = GameService(last_win=lambda currency: {"currency": currency})
    service.ledger.register("p2", currency="PHP")
    config = service.handle("p2", "get-game-config")
    assert config["lastWin"] == {"currency": "PHP"}
    assert set(config["difficultySettings"]) == {"EASY", "MEDIUM", "HARD", "DAREDEVIL"}


def test_bet_replies_with_state_and_pushes_balance(make_service, notify):
    service = make_service()
    reply = bet(service, notify, amount="4.00")
    assert set(reply) == SNAPSHOT_KEYS
    assert reply["lineNumber"] == -1
    assert reply["coeff"] == "1.00"
    assert reply["betAmount"] == "4.00"
    assert reply["crashLine"] is None
    assert notify.events == [(BALANCE_EVENT, {"currency": "USD", "balance": "96.00"})]


def test_game_state_matches_last_reply(make_service):
    service = make_service()
    assert service.handle("p1", "get-game-state") is None
    bet(service)
    stepped = service.handle("p1", "step")
    assert service.handle("p1", "get-game-state") == stepped


def test_insufficient_balance_reply(make_service, ledger, notify):
    service = make_service()
    ledger.register("broke", balance="5.00")
    reply = service.handle("broke", "bet", {"betAmount": "20.00", "difficulty": "MEDIUM"}, notify)
    assert reply["error"] == "Insufficient balance"
    assert reply["isFinished"] is False
    assert reply["lineNumber"] == -1
    assert reply["difficulty"] == "MEDIUM"
    assert reply["totalLines"] == 25
    assert reply["winAmount"] == "0.00"
    assert notify.events == []
    assert ledger.get("broke").balance == Decimal("5.00")
    assert service.handle("broke", "get-game-state") is None


def test_unknown_difficulty_reply_uses_default_profile(make_service, ledger):
    service = make_service()
    reply = bet(service, difficulty="INSANE")
    assert reply["error"].startswith("Invalid difficulty")
    assert reply["difficulty"] == "EASY"
    assert ledger.get("p1").balance == Decimal("100.00")


def test_step_and_withdraw_without_a_game(make_service, notify):
    service = make_service()
    step = service.handle("p1", "step", None, notify)
    withdraw = service.handle("p1", "withdraw", None, notify)
    assert step["error"] == "No active game session found"
    assert withdraw["error"] == "No active game session found for withdrawal"
    for reply in (step, withdraw):
        assert reply["isFinished"] is True
        assert reply["sessionId"] is None
        assert reply["betAmount"] == "0.00"
    assert notify.events == []


def test_second_bet_is_rejected_without_touching_the_first(make_service, ledger, notify):
    service = make_service()
    first = bet(service, notify, amount="2.00")
    second = bet(service, notify, amount="3.00")
    assert second["error"] == "Game already in progress"
    assert second["sessionId"] == first["sessionId"]
    assert second["betAmount"] == "2.00"
    assert ledger.get("p1").balance == Decimal("98.00")
    assert len(notify.events) == 1


def test_withdraw_before_step_keeps_game_running(make_service, ledger):
    service = make_service()
    bet(service)
    reply = service.handle("p1", "withdraw")
    assert reply["error"] == "Cannot withdraw before making any moves"
    assert reply["isFinished"] is False
    assert service.handle("p1", "get-game-state")["lineNumber"] == -1
    assert ledger.get("p1").balance == Decimal("99.00")


def test_crash_ends_session_without_credit(make_service, ledger, notify):
    service = make_service(crash_line=2)
    bet(service)
    notify.events.clear()
    replies = [service.handle("p1", "step", None, notify) for _ in range(3)]
    assert [r["isFinished"] for r in replies] == [False, False, True]
    assert replies[-1]["winAmount"] == "0.00"
    assert replies[-1]["crashLine"] == 2
    assert notify.events == []
    assert service.handle("p1", "get-game-state") is None
    assert ledger.get("p1").balance == Decimal("99.00")
    # The finished round is gone, so a further step has nothing to act on.
    assert service.handle("p1", "step")["error"] == "No active game session found"


def test_withdraw_settles_and_pushes_balance(make_service, ledger, notify):
    service = make_service(crash_line=5)
    bet(service, amount="2.00")
    service.handle("p1", "step")
    service.handle("p1", "step")
    notify.events.clear()
    reply = service.handle("p1", "withdraw", None, notify)
    assert reply["isWin"] is True
    assert reply["winAmount"] == "2.06"
    assert reply["value"] == "init"
    assert notify.events == [(BALANCE_EVENT, {"currency": "USD", "balance": "100.06"})]
    assert ledger.get("p1").balance == Decimal("100.06")
    assert service.handle("p1", "get-game-state") is None
    assert "error" not in bet(service)


def test_track_completion_credits_and_notifies(make_service, ledger, notify):
    service = make_service(crash_line=19)
    bet(service, difficulty="DAREDEVIL")
    notify.events.clear()
    for _ in range(19):
        reply = service.handle("p1", "step", None, notify)
    assert reply["isWin"] is True
    assert reply["coeff"] == "3608855.25"
    assert ledger.get("p1").balance == Decimal("99.00") + Decimal("3608855.25")
    assert notify.events == [(BALANCE_EVENT, {"currency": "USD", "balance": "3608954.25"})]


def test_connect_pushes_initial_events(make_service):
    service = make_service()
    events = dict(service.connect("p1", "conn-1"))
    assert events["onBalanceChange"] == {"currency": "USD", "balance": "100.00"}
    assert events["betsRanges"] == {"USD": ["0.01", "50.00"]}
    assert events["betsConfig"]["USD"]["decimalPlaces"] is None
    assert events["myData"] == {"userId": "p1", "nickname": "Player One", "gameAvatar": None}


def test_connect_registers_unknown_player(make_service):
    service = make_service()
    service.connect("newcomer", "conn-9")
    assert service.ledger.get("newcomer").connection_id == "conn-9"


def test_disconnect_forfeits_running_game(make_service, ledger):
    service = make_service(abandon_policy="forfeit")
    service.connect("p1", "conn-1")
    bet(service, amount="5.00")
    service.handle("p1", "step")
    abandoned = service.disconnect("p1", "conn-1")
    assert abandoned is not None
    assert service.handle("p1", "get-game-state") is None
    assert ledger.get("p1").balance == Decimal("95.00")
    assert ledger.get("p1").connection_id is None


def test_disconnect_refund_policy(make_service, ledger):
    service = make_service(abandon_policy="refund")
    service.connect("p1", "conn-1")
    bet(service, amount="5.00")
    service.disconnect("p1", "conn-1")
    assert ledger.get("p1").balance == Decimal("100.00")


def test_stale_connection_does_not_end_new_one(make_service, ledger):
    service = make_service()
    service.connect("p1", "old")
    service.connect("p1", "new")
    bet(service)
    assert service.disconnect("p1", "old") is None
    assert service.handle("p1", "get-game-state") is not None


def test_unknown_abandon_policy():
    with pytest.raises(ValueError):
        GameService(abandon_policy="shrug")


def test_stats_lists_running_games(make_service):
    service = make_service()
    bet(service, difficulty="HARD")
    stats = service.stats()
    assert stats["activeGames"] == 1
    assert stats["gamesByDifficulty"] == {"EASY": 0, "MEDIUM": 0, "HARD": 1, "DAREDEVIL": 0}
    assert stats["activeSessions"][0]["userId"] == "p1"
    assert stats["totalBalance"] == "99.00"


def test_journal_records_round(ledger):
    from conftest import scripted_generator

    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine)
    service = GameService(
        ledger=ledger, generator=scripted_generator(5), journal=Journal(factory), last_win=lambda c: None
    )
    reply = bet(service, amount="2.00")
    service.handle("p1", "step")
    service.handle("p1", "withdraw")

    with factory() as db:
        movements = db.query(models.Transaction).order_by(models.Transaction.id).all()
        assert [m.type for m in movements] == ["bet", "payout"]
        assert movements[0].amount == Decimal("-2.00")
        assert movements[1].after_balance == Decimal("100.02")
        game_round = db.query(models.GameRound).one()
        assert game_round.session_id == reply["sessionId"]
        assert game_round.result == "win"
        assert game_round.crash_line == 5
        assert game_round.rng == "scripted"
        actions = [log.action for log in db.query(models.GameLog).order_by(models.GameLog.id)]
        assert actions == ["bet", "finish"]


def test_bet_in_another_currency_is_rejected(make_service, ledger, notify):
    service = make_service()
    reply = service.handle("p1", "bet", {"betAmount": "90.00", "currency": "PHP"}, notify)
    assert reply["error"] == "Bet currency does not match the player's balance"
    assert reply["currency"] == "USD"
    assert notify.events == []
    assert ledger.get("p1").balance == Decimal("100.00")
    assert service.handle("p1", "get-game-state") is None


def test_bet_limits_follow_the_balance_currency(make_service, ledger):
    service = make_service()
    reply = service.handle("p1", "bet", {"betAmount": "90.00"})
    assert reply["error"] == "Bet amount must be between 0.01 and 50.00 USD"
    assert ledger.get("p1").balance == Decimal("100.00")


def test_bet_defaults_amount_and_difficulty(make_service, ledger):
    service = make_service()
    reply = service.handle("p1", "bet", {"difficulty": None})
    assert "error" not in reply
    assert reply["betAmount"] == "0.10"
    assert reply["difficulty"] == "EASY"
    assert ledger.get("p1").balance == Decimal("99.90")
