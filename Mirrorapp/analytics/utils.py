import math


def round_half_up(value: float) -> int:
    """Round .5 upwards, the way the dashboard front-end rounds percentages.

    Python's built-in round() uses banker's rounding, which would turn a 2.5%
    genre share into 2 instead of 3.
    """
    return int(math.floor(value + 0.5))


def mean(values) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)
