"""Cosmetic "recent winner" samples pushed to every connection."""

import random

from . import settings
from .schemas import LastWin

FIRST_NAMES = [
    "Alex", "Ben", "Charlie", "Daniel", "Eddie", "Felix", "Henry", "Kevin", "Leo", "Max",
    "Anna", "Bella", "Cindy", "Daisy", "Grace", "Ivy", "Jenny", "Lily", "Mia", "Nina",
]
SURNAMES = ["Nguyen", "Tran", "Santos", "Reyes", "Tan", "Lim", "Wong", "Do", "Cruz", "Lee"]
COUNTRIES = ["TH", "VN", "PH", "MY", "SG", "ID", "KH", "MM", "LA", "BN"]


def random_last_win(currency: str | None = None, rng: random.Random | None = None) -> dict:
    rng = rng or random
    first = rng.choice(FIRST_NAMES)
    username = f"{first} {rng.choice(SURNAMES)}" if rng.random() < 0.7 else first
    return LastWin(
        username=username,
        country_code=rng.choice(COUNTRIES),
        win_amount=f"{rng.uniform(1000, 50000):.2f}",
        currency=currency or settings.DEFAULT_CURRENCY,
    ).model_dump(by_alias=True)
