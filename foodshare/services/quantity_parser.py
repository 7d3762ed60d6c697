"""Free-text quantity parsing."""

import re
from typing import Optional

_DIGITS = re.compile(r"[0-9]+")

# Largest value a Postgres integer column holds
MAX_QUANTITY = 2_147_483_647


def parse_quantity(quantity_text: Optional[str]) -> int:
    """
    Extract the first run of digits from a quantity string.

    "5 servings" -> 5, "2-3 servings" -> 2, "2kg" -> 2.
    Text without any digits counts as one unit; larger numbers are clamped
    to MAX_QUANTITY. This never raises.
    """
    if not quantity_text:
        return 1

    match = _DIGITS.search(str(quantity_text))
    if match is None:
        return 1

    digits = match.group(0).lstrip("0") or "0"
    if len(digits) > len(str(MAX_QUANTITY)):
        return MAX_QUANTITY
    return min(int(digits), MAX_QUANTITY)
