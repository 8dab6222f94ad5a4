"""Rating arithmetic: half-up rounding and the Bayesian-adjusted score."""
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

MIN_RATING = 1.0
MAX_RATING = 10.0
DEFAULT_MIN_VOTES = 1
DEFAULT_GLOBAL_AVERAGE = 5.5


def round_half_up(value: float, places: int) -> float:
    """Round *value* to *places* decimals, halves away from zero.

    Goes through the shortest decimal repr so 9.25 rounds to 9.3 rather than
    being dragged down by its binary representation.

    Raises:
        ValueError: If *value* has too many digits to be rounded exactly.
    """
    quantum = Decimal(1).scaleb(-places)
    try:
        rounded = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"{value!r} is too large to round to {places} places")
    return float(rounded)


def round_rating(value) -> float:
    """Normalise a submitted rating to one decimal place.

    Raises:
        ValueError: If *value* is not a finite number or is too large.
    """
    if isinstance(value, bool):
        raise ValueError(f"Rating must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Rating must be finite, got {value!r}")
    return round_half_up(number, 1)


def bayesian_score(votes: int, average: Optional[float],
                   min_votes: int = DEFAULT_MIN_VOTES,
                   global_average: float = DEFAULT_GLOBAL_AVERAGE) -> float:
    """Return ``(n*R + m*C) / (n + m)`` rounded to two decimals.

    Args:
        votes:          Number of active ratings (n).
        average:        Mean of those ratings (R); ignored when n is 0.
        min_votes:      Weight of the prior (m).
        global_average: The prior itself (C).
    """
    if votes < 0:
        raise ValueError("votes must not be negative")
    if votes == 0:
        return round_half_up(global_average, 2)
    score = (votes * average + min_votes * global_average) / (votes + min_votes)
    return round_half_up(score, 2)
