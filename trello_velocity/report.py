"""Report data for the velocity tables and chart (no I/O)."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .ledger import SprintLedger, SprintRecord
from .points import aggregate_points
from .trello import Card


class EmptyHistoryError(Exception):
    """Raised when an operation needs at least one recorded sprint."""


@dataclass(frozen=True)
class VelocitySnapshot:
    points_todo: int
    points_doing: int
    points_done: int


@dataclass(frozen=True)
class RunningVelocityPoint:
    sprint_number: int
    current_velocity: int
    running_velocity: float


def current_snapshot(
    backlog_cards: Iterable[Card],
    doing_cards: Iterable[Card],
    done_cards: Iterable[Card],
) -> VelocitySnapshot:
    return VelocitySnapshot(
        points_todo=aggregate_points(backlog_cards),
        points_doing=aggregate_points(doing_cards),
        points_done=aggregate_points(done_cards),
    )


def running_average(records: Iterable[SprintRecord]) -> list[RunningVelocityPoint]:
    """Cumulative mean of velocities in the given order.

    Position i gets the mean of entries 1..i as they are enumerated,
    which is not necessarily sprint number order.
    """
    points: list[RunningVelocityPoint] = []
    total = 0
    for position, rec in enumerate(records, start=1):
        total += rec.velocity
        points.append(
            RunningVelocityPoint(
                sprint_number=rec.sprint_number,
                current_velocity=rec.velocity,
                running_velocity=total / position,
            )
        )
    return points


def history_with_running_average(ledger: SprintLedger) -> list[RunningVelocityPoint]:
    return running_average(ledger.get_all_records())


def max_velocity_plus_one(history: Sequence[RunningVelocityPoint]) -> int:
    """Upper bound for the chart's velocity axis.

    Raises:
        EmptyHistoryError: If history is empty.
    """
    if not history:
        msg = "No sprint velocities recorded yet"
        raise EmptyHistoryError(msg)
    return max(p.current_velocity for p in history) + 1


def current_running_velocity(history: Sequence[RunningVelocityPoint]) -> float:
    """Running velocity after the last recorded sprint.

    Raises:
        EmptyHistoryError: If history is empty.
    """
    if not history:
        msg = "No sprint velocities recorded yet"
        raise EmptyHistoryError(msg)
    return history[-1].running_velocity
