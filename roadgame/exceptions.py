class GameError(Exception):
    """Expected, player-facing failure. ``str(exc)`` is sent to the client."""

    message = "Game error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class UnknownDifficulty(GameError):
    message = "Invalid difficulty"


class InvalidBetAmount(GameError):
    message = "Invalid bet amount"


class BetOutOfRange(GameError):
    message = "Bet amount out of range"


class InsufficientBalance(GameError):
    message = "Insufficient balance"


class NoActiveSession(GameError):
    message = "No active game session found"


class AlreadyFinished(GameError):
    message = "Game is already finished"


class NoMovesYet(GameError):
    message = "Cannot withdraw before making any moves"


class GameAlreadyActive(GameError):
    message = "Game already in progress"


class UnknownPlayer(GameError):
    message = "Unknown player"


class CurrencyMismatch(GameError):
    message = "Bet currency does not match the player's balance"
