"""Velocity bar chart rendering."""

import logging
from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError, version

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from .report import (  # noqa: E402
    RunningVelocityPoint,
    current_running_velocity,
    max_velocity_plus_one,
)

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
_DPI = 100


def _package_version() -> str:
    try:
        return version("trello-velocity")
    except PackageNotFoundError:
        return "dev"


def get_docu_text() -> str:
    return f"Generated by trello-velocity ({_package_version()})"


def render_velocity_chart(
    history: Sequence[RunningVelocityPoint],
    output_file_name: str,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
) -> None:
    """Write a PNG with per-sprint velocity bars and the running velocity.

    Bars are placed in history order and labelled with their sprint number.

    Raises:
        EmptyHistoryError: If history is empty (no file is written).
    """
    # Validate before touching the output file
    y_max = max_velocity_plus_one(history)
    running = current_running_velocity(history)

    positions = list(range(1, len(history) + 1))
    fig, ax = plt.subplots(figsize=(width / _DPI, height / _DPI), dpi=_DPI)
    try:
        fig.suptitle(f"Team velocity ({int(running)})", fontsize=32)
        ax.set_title(get_docu_text(), fontsize=9)

        ax.bar(
            positions,
            [p.current_velocity for p in history],
            color="red",
            alpha=0.5,
            label="Velocity (for sprint)",
        )
        ax.plot(
            positions,
            [p.running_velocity for p in history],
            color="blue",
            marker="o",
            label="Velocity (running)",
        )

        ax.set_xticks(positions)
        ax.set_xticklabels([str(p.sprint_number) for p in history])
        ax.set_ylim(0, y_max)
        ax.set_xlabel("Sprint #", fontsize=15)
        ax.set_ylabel("Velocity", fontsize=15)
        ax.grid(axis="y", alpha=0.3, linestyle="--", linewidth=0.4)
        ax.legend(loc="upper left")

        fig.savefig(output_file_name, format="png")
    finally:
        plt.close(fig)

    logger.info("Wrote velocity chart to %s", output_file_name)
