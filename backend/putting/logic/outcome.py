"""Validation of a round outcome: the number of makes out of five putts."""

import math
from numbers import Real

MIN_MAKES = 0
MAX_MAKES = 5


class InvalidOutcomeError(ValueError):
    """Outcome is not a number at all (out-of-range numbers are clamped, not rejected)."""


def clamp_makes(value: object) -> int:
    """Return ``value`` as an integer number of makes clamped to [0, 5].

    Non-integral reals are rounded half to even before clamping. Booleans,
    strings, None, NaN and infinities raise InvalidOutcomeError.
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidOutcomeError(f"makes must be a number, got {value!r}")
    if isinstance(value, int):
        makes = value
    else:
        as_float = float(value)
        if not math.isfinite(as_float):
            raise InvalidOutcomeError(f"makes must be finite, got {value!r}")
        makes = round(as_float)
    return max(MIN_MAKES, min(MAX_MAKES, makes))
