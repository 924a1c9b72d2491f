from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from .database import Base


class GameRound(Base):
    __tablename__ = "game_rounds"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, unique=True, index=True, nullable=False)
    player_id = Column(String, index=True, nullable=False)
    difficulty = Column(String, nullable=False)
    currency = Column(String, nullable=False)
    bet_amount = Column(Numeric(18, 2), nullable=False)
    seed = Column(String, nullable=True)  # decimal string, seeds use the full 64 bits
    rng = Column(String, nullable=False)
    crash_line = Column(Integer, nullable=False)
    line_number = Column(Integer, nullable=False)
    result = Column(String, nullable=False)  # win | lose | abandoned
    payout_multiplier = Column(Numeric(18, 2), nullable=False)
    payout_amount = Column(Numeric(18, 2), nullable=False)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String, index=True, nullable=False)
    session_id = Column(String, nullable=True)
    type = Column(String, nullable=False)  # bet | payout | refund
    currency = Column(String, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    before_balance = Column(Numeric(18, 2), nullable=False)
    after_balance = Column(Numeric(18, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class GameLog(Base):
    __tablename__ = "game_logs"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String, nullable=True)
    nickname = Column(String, nullable=True)
    session_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    detail = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
