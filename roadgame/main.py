import asyncio
import contextlib
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import models, schemas, settings
from .auth import sign_token, verify_token
from .database import Base, engine, get_db
from .difficulty import get_difficulty
from .dispatcher import LAST_WIN_EVENT, GameService
from .exceptions import GameError, UnknownDifficulty
from .fairness import replay_crash_line
from .game import RoadGame, parse_bet_amount
from .journal import Journal
from .ledger import format_money
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

service = GameService(journal=Journal())

app = FastAPI(
    title="Chicken Road",
    description="Step-by-step crash game served over a websocket.",
)


@app.on_event("startup")
def startup() -> None:
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Game server ready: rng=%s abandon=%s debug_endpoints=%s",
        service.generator.rng_name,
        service.abandon_policy,
        settings.ENABLE_DEBUG_ENDPOINTS,
    )


def require_debug() -> None:
    if not settings.ENABLE_DEBUG_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Debug endpoints are disabled")


def player_item(player) -> schemas.PlayerItem:
    return schemas.PlayerItem(
        user_id=player.player_id,
        nickname=player.nickname,
        balance=format_money(player.balance),
        currency=player.currency,
        game_avatar=player.avatar,
    )


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/auth", response_model=schemas.AuthResponse)
def api_auth(payload: schemas.AuthRequest):
    player_id = payload.user_id or uuid.uuid4().hex
    with service.registry.locked(player_id):
        player = service.ledger.register(
            player_id,
            nickname=payload.nickname,
            balance=payload.balance,
            currency=payload.currency,
            avatar=payload.avatar,
        )
    return schemas.AuthResponse(token=sign_token(player_id), user=player_item(player))


@app.get("/game-info")
def game_info():
    return service.game_info()


@app.get("/game-stats", dependencies=[Depends(require_debug)])
def game_stats():
    return service.stats()


@app.post("/test-game", dependencies=[Depends(require_debug)])
def test_game(payload: schemas.SimulationRequest):
    """Play a throwaway round without touching any balance."""
    try:
        profile = get_difficulty(payload.difficulty)
        amount = parse_bet_amount(payload.bet_amount)
    except GameError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    player_id = f"test_user_{int(time.time() * 1000)}"
    seed, crash_line = service.generator.commit(player_id, profile)
    game = RoadGame(
        None, player_id, amount, profile, settings.DEFAULT_CURRENCY, crash_line, seed, service.generator.rng_name
    )
    steps = []
    for i in range(payload.steps):
        if game.is_finished:
            break
        steps.append({"step": i + 1, **game.step().to_wire()})
    return {"gameStats": game.stats(), "steps": steps, "finalState": game.snapshot().to_wire()}


@app.get("/api/rounds/{session_id}/verify", response_model=schemas.RoundVerification)
def verify_round(session_id: str, db: Session = Depends(get_db)):
    game_round = db.query(models.GameRound).filter(models.GameRound.session_id == session_id).first()
    if not game_round:
        raise HTTPException(status_code=404, detail="Round not found")
    replayed = None
    if game_round.rng == "lcg" and game_round.seed is not None:
        try:
            profile = get_difficulty(game_round.difficulty)
        except UnknownDifficulty as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        replayed = replay_crash_line(int(game_round.seed), profile)
    return schemas.RoundVerification(
        session_id=game_round.session_id,
        player_id=game_round.player_id,
        difficulty=game_round.difficulty,
        seed=game_round.seed,
        rng=game_round.rng,
        stored_crash_line=game_round.crash_line,
        replayed_crash_line=replayed,
        verified=replayed is not None and replayed == game_round.crash_line,
        finished_at=game_round.finished_at,
    )


# =========================
# Websocket protocol
# =========================


async def push_last_wins(websocket: WebSocket, currency: str) -> None:
    while True:
        await asyncio.sleep(settings.LAST_WIN_INTERVAL)
        await websocket.send_json({"event": LAST_WIN_EVENT, "data": service.last_win(currency)})


async def handle_frame(websocket: WebSocket, player_id: str, text: str) -> None:
    try:
        frame = json.loads(text)
    except ValueError:
        logger.warning("Dropping non-JSON frame from %s", player_id)
        return
    if not isinstance(frame, dict):
        logger.warning("Dropping frame from %s: expected an object", player_id)
        return
    event = frame.get("event", "gameService")
    if event != "gameService":
        logger.info("Ignoring %r event from %s", event, player_id)
        return

    data = frame.get("data")
    # Socket.IO style clients wrap the request in a one-element list.
    if isinstance(data, list) and data:
        data = data[0]
    pending = []
    try:
        request = schemas.GameRequest.model_validate(data)
    except ValidationError:
        logger.warning("Malformed gameService request from %s: %r", player_id, data)
        reply = None
    else:
        reply = await run_in_threadpool(
            service.handle,
            player_id,
            request.action,
            request.payload,
            lambda name, body: pending.append((name, body)),
        )
    await websocket.send_json({"id": frame.get("id"), "event": "gameService", "data": reply})
    for name, body in pending:
        await websocket.send_json({"event": name, "data": body})


@app.websocket("/io/")
async def game_socket(websocket: WebSocket, token: str | None = Query(None)):
    await websocket.accept()
    raw_token = token or websocket.headers.get("authorization")
    try:
        if not raw_token:
            raise HTTPException(status_code=401, detail="Authentication required")
        player_id = verify_token(raw_token)
    except HTTPException as exc:
        logger.warning("Rejected websocket connection: %s", exc.detail)
        await websocket.close(code=4001, reason=str(exc.detail))
        return

    connection_id = uuid.uuid4().hex
    for name, body in await run_in_threadpool(service.connect, player_id, connection_id):
        await websocket.send_json({"event": name, "data": body})
    currency = service.ledger.get(player_id).currency
    ticker = asyncio.create_task(push_last_wins(websocket, currency))
    try:
        while True:
            text = await websocket.receive_text()
            await handle_frame(websocket, player_id, text)
    except WebSocketDisconnect as exc:
        logger.info("Websocket for %s closed (%s)", player_id, exc.code)
    finally:
        ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await ticker
        await run_in_threadpool(service.disconnect, player_id, connection_id)


def run() -> None:
    import uvicorn

    setup_logging()
    uvicorn.run(
        "roadgame.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8001")),
    )
