"""Story point extraction from card titles and per-list aggregation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .ledger import MAX_VELOCITY

if TYPE_CHECKING:
    from .trello import Card

logger = logging.getLogger(__name__)

# "(5) Title", "(13**) Title": one or two digits, no leading zero,
# followed by up to three uncertainty markers.
POINTS_RE = re.compile(r"^\((?P<points>[1-9][0-9]?)(?P<uncertainty>\*{0,3})\)")

MIN_POINTS = 1
MAX_POINTS = 99


@dataclass(frozen=True)
class PointValue:
    points: int
    # Number of trailing asterisks; informational only, never summed
    uncertainty: int = 0


def extract_points(title: str) -> PointValue | None:
    """Parse the story point estimate from the start of a card title.

    Returns:
        PointValue if the title starts with a point marker, else None.
    """
    match = POINTS_RE.match(title or "")
    if not match:
        return None

    points = int(match.group("points"))
    if not MIN_POINTS <= points <= MAX_POINTS:
        logger.warning("Ignoring out-of-range point value %d in %r", points, title)
        return None
    return PointValue(points=points, uncertainty=len(match.group("uncertainty")))


def aggregate_points(cards: Iterable[Card]) -> int:
    """Sum the story points of all cards, saturating at MAX_VELOCITY.

    Cards without a point marker count as zero.
    """
    total = 0
    for card in cards:
        value = extract_points(card.title)
        if value is None:
            logger.debug("No point marker on card %s", card.id)
            continue
        total += value.points
    if total > MAX_VELOCITY:
        logger.warning(
            "Aggregated points %d exceed %d, saturating", total, MAX_VELOCITY
        )
        return MAX_VELOCITY
    return total
