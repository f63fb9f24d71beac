"""Confirmed recording of sprint velocities into the ledger."""

import logging
import sys
from collections.abc import Callable
from typing import Protocol, TextIO

from .ledger import SprintLedger, SprintRecord

logger = logging.getLogger(__name__)

_YES = {"y", "Y"}
_NO = {"n", "N"}


class Confirmer(Protocol):
    def ask(self, question: str) -> bool: ...


class TerminalConfirmer:
    """Ask a yes/no question on the terminal until y/Y or n/N is given.

    Without an output stream the prompt is shown by input_fn itself
    (stdout for the builtin input). With one, the prompt and hints are
    written there and input_fn only reads the answer.

    Blocks with no timeout. EOFError propagates if input is closed.
    """

    def __init__(
        self,
        input_fn: Callable[[str], str] | None = None,
        output: TextIO | None = None,
    ):
        self.input_fn = input_fn if input_fn is not None else input
        self.output = output

    def _read_answer(self, prompt: str) -> str:
        if self.output is None:
            return self.input_fn(prompt)
        print(prompt, end="", file=self.output, flush=True)
        return self.input_fn("")

    def ask(self, question: str) -> bool:
        while True:
            answer = self._read_answer(f"{question} [y/n] ").strip()
            if answer in _YES:
                return True
            if answer in _NO:
                return False
            print("Please answer y or n.", file=self.output or sys.stdout)


class AutoConfirmer:
    """Answer every question with a fixed value (--yes, tests)."""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.questions: list[str] = []

    def ask(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


class SprintRecorder:
    """Decide the sprint number, confirm with the user, then write."""

    def __init__(
        self,
        ledger: SprintLedger,
        confirmer: Confirmer,
        echo: Callable[[str], None] = print,
    ):
        self.ledger = ledger
        self.confirmer = confirmer
        self.echo = echo

    def record_manual(self, sprint_number: int, velocity: int) -> SprintRecord | None:
        """Record a velocity for an explicit sprint number after confirmation.

        Returns:
            The written record, or None if the user declined.
        """
        question = (
            f"Is it correct that you finished {velocity} velocity point(s) "
            f"in your {sprint_number}. sprint?"
        )
        if not self.confirmer.ask(question):
            logger.debug("Recording sprint %d declined", sprint_number)
            self.echo("Aborting!")
            return None

        self.ledger.record(sprint_number, velocity)
        return SprintRecord(sprint_number=sprint_number, velocity=velocity)

    def record_auto(self, finished_points: int) -> SprintRecord | None:
        """Record finished points for the sprint after the last recorded one."""
        sprint_number = self.ledger.get_last_sprint_number() + 1
        return self.record_manual(sprint_number, finished_points)
