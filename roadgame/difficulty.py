from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Tuple

from .exceptions import UnknownDifficulty


@dataclass(frozen=True)
class DifficultyProfile:
    name: str
    total_lines: int
    base_crash_chance: float
    max_crash_chance: float
    increase_rate: float
    coefficients: Tuple[Decimal, ...]

    def __post_init__(self) -> None:
        if not 0 < self.base_crash_chance <= self.max_crash_chance <= 1:
            raise ValueError(f"{self.name}: crash chances must satisfy 0 < base <= max <= 1")
        if self.increase_rate < 0:
            raise ValueError(f"{self.name}: increase_rate must not be negative")
        if len(self.coefficients) < self.total_lines:
            raise ValueError(f"{self.name}: ladder shorter than the track")
        if any(b <= a for a, b in zip(self.coefficients, self.coefficients[1:])):
            raise ValueError(f"{self.name}: ladder must be strictly increasing")

    def crash_chance(self, line: int) -> float:
        """Probability of crashing when stepping onto ``line`` (1-based)."""
        return min(
            self.base_crash_chance + (line - 1) * self.increase_rate,
            self.max_crash_chance,
        )

    def coefficient(self, line: int) -> Decimal:
        if line < 0:
            return Decimal("1.00")
        return self.coefficients[min(line, len(self.coefficients) - 1)]

    def settings_dict(self) -> dict:
        return {
            "totalLines": self.total_lines,
            "baseCrashChance": self.base_crash_chance,
            "maxCrashChance": self.max_crash_chance,
            "increaseRate": self.increase_rate,
        }


def _ladder(*values: str) -> Tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


DIFFICULTIES: Dict[str, DifficultyProfile] = {
    "EASY": DifficultyProfile(
        name="EASY",
        total_lines=30,
        base_crash_chance=0.02,
        max_crash_chance=0.15,
        increase_rate=0.004,
        coefficients=_ladder(
            "1.01", "1.03", "1.06", "1.10", "1.15", "1.19", "1.24", "1.30", "1.35", "1.42",
            "1.48", "1.56", "1.65", "1.75", "1.85", "1.98", "2.12", "2.28", "2.47", "2.70",
            "2.96", "3.28", "3.70", "4.11", "4.64", "5.39", "6.50", "8.36", "12.08", "23.24",
        ),
    ),
    "MEDIUM": DifficultyProfile(
        name="MEDIUM",
        total_lines=25,
        base_crash_chance=0.03,
        max_crash_chance=0.25,
        increase_rate=0.008,
        coefficients=_ladder(
            "1.08", "1.21", "1.37", "1.56", "1.78", "2.05", "2.37", "2.77", "3.24", "3.85",
            "4.62", "5.61", "6.91", "8.64", "10.99", "14.29", "18.96", "26.07", "37.24", "53.82",
            "82.36", "137.59", "265.35", "638.82", "2457.00",
        ),
    ),
    "HARD": DifficultyProfile(
        name="HARD",
        total_lines=22,
        base_crash_chance=0.05,
        max_crash_chance=0.35,
        increase_rate=0.012,
        coefficients=_ladder(
            "1.18", "1.46", "1.83", "2.31", "2.95", "3.82", "5.02", "6.66", "9.04", "12.52",
            "17.74", "25.80", "38.71", "60.21", "97.34", "166.87", "305.94", "595.86", "1283.03",
            "3267.64", "10898.54", "62162.09",
        ),
    ),
    "DAREDEVIL": DifficultyProfile(
        name="DAREDEVIL",
        total_lines=18,
        base_crash_chance=0.08,
        max_crash_chance=0.45,
        increase_rate=0.018,
        coefficients=_ladder(
            "1.44", "2.21", "3.45", "5.53", "9.09", "15.30", "26.78", "48.70", "92.54",
            "185.08", "391.25", "894.28", "2235.72", "6096.15", "18960.33", "72432.75",
            "379632.82", "3608855.25",
        ),
    ),
}


def get_difficulty(name: str | None) -> DifficultyProfile:
    profile = DIFFICULTIES.get(name or "")
    if profile is None:
        raise UnknownDifficulty(f"Invalid difficulty: {name}")
    return profile


def game_config(last_win: dict | None = None) -> dict:
    """Payload of the ``get-game-config`` action."""
    return {
        "coefficients": {
            name: [f"{c:.2f}" for c in p.coefficients] for name, p in DIFFICULTIES.items()
        },
        "difficultySettings": {name: p.settings_dict() for name, p in DIFFICULTIES.items()},
        "lastWin": last_win,
    }
