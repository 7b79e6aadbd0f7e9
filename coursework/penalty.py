"""Late-penalty arithmetic shared by grading, the AI adapter and analytics.

Rounding is round-half-up everywhere (76.5 -> 77), never Python's banker's
rounding.
"""
import math
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

PENALTY_PER_DAY = 5
MAX_PENALTY = 50
EARLY_BIRD_DAYS = 7

ONE_DAY = timedelta(days=1).total_seconds()


def round_half_up(value):
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def days_late(now, due_date):
    if now <= due_date:
        return 0
    return math.ceil((now - due_date).total_seconds() / ONE_DAY)


def days_until_due(now, due_date):
    return math.ceil((due_date - now).total_seconds() / ONE_DAY)


def calculate_penalty(now, due_date):
    """5% per started day past the due date, capped at 50%."""
    return min(days_late(now, due_date) * PENALTY_PER_DAY, MAX_PENALTY)


def is_early(now, due_date):
    return days_until_due(now, due_date) >= EARLY_BIRD_DAYS


def apply_penalty(raw_grade, penalty):
    """Penalty is a percentage of the raw grade, not a flat deduction."""
    if not penalty:
        return round_half_up(raw_grade)
    return round_half_up(max(0, raw_grade - raw_grade * penalty / 100))


def percentage_score(final_grade, max_points):
    if final_grade is None or not max_points:
        return None
    score = Decimal(str(final_grade)) * 100 / Decimal(str(max_points))
    return float(score.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
