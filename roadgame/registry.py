import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .exceptions import GameAlreadyActive
from .game import RoadGame


class SessionRegistry:
    """At most one running round per player, plus one lock per player.

    The lock table is only guarded while a lock is looked up or created;
    game logic for different players never waits on each other.
    """

    def __init__(self):
        self._games: Dict[str, RoadGame] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, player_id: str) -> threading.RLock:
        lock = self._locks.get(player_id)
        if lock is None:
            with self._locks_guard:
                lock = self._locks.setdefault(player_id, threading.RLock())
        return lock

    @contextmanager
    def locked(self, player_id: str) -> Iterator[None]:
        with self.lock_for(player_id):
            yield

    def get(self, player_id: str) -> Optional[RoadGame]:
        return self._games.get(player_id)

    def begin(self, player_id: str, game: RoadGame) -> None:
        if player_id in self._games:
            raise GameAlreadyActive()
        self._games[player_id] = game

    def end(self, player_id: str) -> Optional[RoadGame]:
        return self._games.pop(player_id, None)

    def active_games(self) -> List[RoadGame]:
        return list(self._games.values())

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._games
