"""trello-velocity: SCRUM velocity tracking for a Trello board.

Usage:
    trello-velocity [--json] [--db PATH] [--config PATH] [-v] COMMAND

Commands:
    show-lists-of-board [BOARD_ID]                  List the lists of a board (for configuration)
    show-current-velocity                           Story points in backlog/doing/done lists
    show-stored-velocities                          Recorded sprint velocities with running average
    plot-velocity-graph [FILE]                      Write a PNG chart of recorded velocities
    add-sprint-velocity [--yes]                     Record done points for the next sprint
    add-sprint-velocity-manually SPRINT VEL [--yes] Record a velocity for a given sprint
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import NoReturn, TextIO

from .chart import DEFAULT_HEIGHT, DEFAULT_WIDTH, render_velocity_chart
from .config import CREDENTIAL_SETTINGS, Configuration, load_configuration
from .ledger import (
    MAX_SPRINT_NUMBER,
    MAX_VELOCITY,
    MIN_SPRINT_NUMBER,
    LedgerUnavailableError,
    LedgerWriteError,
    SprintLedger,
    SprintRecord,
)
from .points import aggregate_points
from .recorder import AutoConfirmer, Confirmer, SprintRecorder, TerminalConfirmer
from .report import (
    EmptyHistoryError,
    RunningVelocityPoint,
    current_snapshot,
    history_with_running_average,
)
from .trello import TrelloClient, TrelloError

logger = logging.getLogger(__name__)

DEFAULT_CHART_FILE = "velocity.png"

BOARD_ID_MISSING = (
    "You have to supply a board id via the configuration file or the command line."
)

LIST_SETTINGS = (
    "trello.lists.backlog_id",
    "trello.lists.doing_id",
    "trello.lists.done_id",
)


def _int_in_range(low: int, high: int):
    """Argparse type factory: integer within [low, high]."""

    def parse(value: str) -> int:
        try:
            n = int(value)
        except ValueError:
            msg = f"must be an integer, got {value!r}"
            raise argparse.ArgumentTypeError(msg) from None
        if not low <= n <= high:
            msg = f"must be between {low} and {high}, got {n}"
            raise argparse.ArgumentTypeError(msg)
        return n

    return parse


def _positive_int(value: str) -> int:
    """Argparse type: parse a positive integer (> 0)."""
    n = int(value)
    if n <= 0:
        msg = f"must be a positive integer, got {n}"
        raise argparse.ArgumentTypeError(msg)
    return n


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _get_config(args: argparse.Namespace) -> Configuration:
    return load_configuration(args.config)


def _require(config: Configuration, *names: str) -> None:
    """Exit with guidance if any of the named settings is blank."""
    missing = config.missing(*names)
    if missing:
        _fail(
            f"Missing configuration: {', '.join(missing)}. "
            "Set them in velocity.yml (credentials may also come from "
            "TRELLO_API_KEY/TRELLO_API_TOKEN); use show-lists-of-board "
            "to look up list ids."
        )


def _get_board_client(config: Configuration) -> TrelloClient:
    return TrelloClient(config.trello.api.key, config.trello.api.token)


def _get_ledger(args: argparse.Namespace) -> SprintLedger:
    return SprintLedger(args.db)


def _message_stream(args: argparse.Namespace) -> TextIO:
    """Stream for prompts and notices: stderr in JSON mode, else stdout."""
    return sys.stderr if args.json else sys.stdout


def _get_recorder(args: argparse.Namespace) -> SprintRecorder:
    stream = _message_stream(args)
    confirmer: Confirmer
    if args.yes:
        confirmer = AutoConfirmer()
    elif args.json:
        confirmer = TerminalConfirmer(output=stream)
    else:
        confirmer = TerminalConfirmer()
    return SprintRecorder(
        _get_ledger(args), confirmer, echo=lambda message: print(message, file=stream)
    )


def _output(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def _read_history(args: argparse.Namespace) -> list[RunningVelocityPoint]:
    try:
        return history_with_running_average(_get_ledger(args))
    except LedgerUnavailableError as e:
        _fail(str(e))


# --- Board commands ---


def cmd_show_lists_of_board(args: argparse.Namespace) -> None:
    config = _get_config(args)
    board_id = args.board_id or config.trello.board.id
    if not board_id:
        print(BOARD_ID_MISSING, file=sys.stderr)
        sys.exit(1)
    _require(config, *CREDENTIAL_SETTINGS)

    try:
        with _get_board_client(config) as client:
            lists = client.fetch_lists(board_id)
    except TrelloError as e:
        _fail(str(e))

    if args.json:
        _output([board_list.model_dump() for board_list in lists])
        return
    if not lists:
        print(f"Board {board_id} has no lists.")
        return
    width = max(len("ID"), *(len(bl.id) for bl in lists))
    print(f"{'ID':<{width}}  List name")
    print("-" * (width + 30))
    for bl in lists:
        print(f"{bl.id:<{width}}  {bl.name}")


def cmd_show_current_velocity(args: argparse.Namespace) -> None:
    config = _get_config(args)
    _require(config, *CREDENTIAL_SETTINGS, *LIST_SETTINGS)
    lists = config.trello.lists

    try:
        with _get_board_client(config) as client:
            snapshot = current_snapshot(
                client.fetch_cards(lists.backlog_id),
                client.fetch_cards(lists.doing_id),
                client.fetch_cards(lists.done_id),
            )
    except TrelloError as e:
        _fail(str(e))

    if args.json:
        _output(asdict(snapshot))
        return
    print(f"{'Story points to do':<20} {'Story points doing':<20} {'Story points done'}")
    print("-" * 60)
    print(
        f"{snapshot.points_todo:<20} {snapshot.points_doing:<20} {snapshot.points_done}"
    )


# --- History commands ---


def cmd_show_stored_velocities(args: argparse.Namespace) -> None:
    history = _read_history(args)
    if args.json:
        _output([asdict(p) for p in history])
        return
    if not history:
        print("No sprint velocities stored yet.")
        return
    print(f"{'Sprint #':<10} {'Velocity (for sprint)':<23} {'Velocity (running)'}")
    print("-" * 55)
    for p in history:
        print(
            f"{p.sprint_number:<10} {p.current_velocity:<23} {p.running_velocity:.2f}"
        )


def cmd_plot_velocity_graph(args: argparse.Namespace) -> None:
    history = _read_history(args)
    try:
        render_velocity_chart(
            history, args.output_file_name, width=args.width, height=args.height
        )
    except EmptyHistoryError as e:
        _fail(f"{e}; nothing to plot.")
    except OSError as e:
        _fail(f"Cannot write {args.output_file_name}: {e}")

    if args.json:
        _output({"output_file_name": args.output_file_name, "sprints": len(history)})
    else:
        print(f"Velocity graph written to {args.output_file_name}")


# --- Recording commands ---


def _report_recorded(args: argparse.Namespace, record: SprintRecord | None) -> None:
    if args.json:
        _output(
            {"recorded": record is not None, **(asdict(record) if record else {})}
        )
    elif record is not None:
        print(
            f"Stored velocity {record.velocity} for sprint {record.sprint_number}."
        )


def _record(args: argparse.Namespace, action) -> None:
    """Run a recorder action, mapping failures to CLI errors."""
    recorder = _get_recorder(args)
    try:
        record = action(recorder)
    except EOFError:
        print("Aborting!", file=_message_stream(args))
        sys.exit(1)
    except (LedgerUnavailableError, LedgerWriteError, ValueError) as e:
        _fail(str(e))
    _report_recorded(args, record)


def cmd_add_sprint_velocity(args: argparse.Namespace) -> None:
    config = _get_config(args)
    _require(config, *CREDENTIAL_SETTINGS, "trello.lists.done_id")

    try:
        with _get_board_client(config) as client:
            finished_points = aggregate_points(
                client.fetch_cards(config.trello.lists.done_id)
            )
    except TrelloError as e:
        _fail(str(e))

    _record(args, lambda recorder: recorder.record_auto(finished_points))


def cmd_add_sprint_velocity_manually(args: argparse.Namespace) -> None:
    _record(
        args,
        lambda recorder: recorder.record_manual(args.sprint_number, args.velocity),
    )


# --- Parser ---


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trello-velocity",
        description=(
            "Calculate the velocity of a SCRUM team based on the voted "
            "stories on a Trello board."
        ),
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument(
        "--db",
        help="Sprint ledger path (default: $VELOCITY_DB or sprint.db)",
    )
    parser.add_argument(
        "--config",
        help="Configuration file (default: $VELOCITY_CONFIG or velocity.yml)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", help="Command")

    # show-lists-of-board
    lists_parser = sub.add_parser(
        "show-lists-of-board",
        help="Show the available lists of a board (for the initial configuration)",
    )
    lists_parser.add_argument(
        "board_id", nargs="?", help="Board id (default: trello.board.id)"
    )
    lists_parser.set_defaults(func=cmd_show_lists_of_board)

    # show-current-velocity
    current_parser = sub.add_parser(
        "show-current-velocity", help="Show the velocity of the current sprint"
    )
    current_parser.set_defaults(func=cmd_show_current_velocity)

    # show-stored-velocities
    stored_parser = sub.add_parser(
        "show-stored-velocities", help="Show all stored sprint velocities"
    )
    stored_parser.set_defaults(func=cmd_show_stored_velocities)

    # plot-velocity-graph
    plot_parser = sub.add_parser(
        "plot-velocity-graph", help="Plot the stored velocities as a PNG graph"
    )
    plot_parser.add_argument(
        "output_file_name",
        nargs="?",
        default=DEFAULT_CHART_FILE,
        help=f"Output file (default: {DEFAULT_CHART_FILE})",
    )
    plot_parser.add_argument("--width", type=_positive_int, default=DEFAULT_WIDTH)
    plot_parser.add_argument("--height", type=_positive_int, default=DEFAULT_HEIGHT)
    plot_parser.set_defaults(func=cmd_plot_velocity_graph)

    # add-sprint-velocity
    add_parser = sub.add_parser(
        "add-sprint-velocity", help="Store the velocity of the current sprint"
    )
    add_parser.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )
    add_parser.set_defaults(func=cmd_add_sprint_velocity)

    # add-sprint-velocity-manually
    manual_parser = sub.add_parser(
        "add-sprint-velocity-manually",
        help="Store the velocity of a sprint manually",
    )
    manual_parser.add_argument(
        "sprint_number",
        type=_int_in_range(MIN_SPRINT_NUMBER, MAX_SPRINT_NUMBER),
        help="The number which identifies the sprint",
    )
    manual_parser.add_argument(
        "velocity",
        type=_int_in_range(0, MAX_VELOCITY),
        help="The number of velocity points finished in the given sprint",
    )
    manual_parser.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )
    manual_parser.set_defaults(func=cmd_add_sprint_velocity_manually)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
