#!/usr/bin/env python3
"""
Command chains.

A chain is a sequence of lrm commands written as one string separated by
``--`` (``"add-language fr -- add Greeting Hello"``), run one after the
other with stop-on-error or continue-on-error semantics.
"""

import logging
import shlex
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .exceptions import FatalEnvironmentError

logger = logging.getLogger(__name__)

COMMAND_SEPARATOR = "--"


class ChainState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ChainCommandResult:
    """Outcome of one step."""
    step: int
    command_args: list[str]
    status: StepStatus
    exit_code: Optional[int] = None
    duration: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'step': self.step,
            'command': shlex.join(self.command_args),
            'status': self.status.value,
            'exit_code': self.exit_code,
            'duration': round(self.duration, 3),
            'error': self.error,
        }


def _tokenize(text: str) -> list[tuple[str, bool]]:
    """
    Split text into (token, quoted) pairs.

    Double quotes group whitespace and are removed; a backslash makes the
    next character literal.
    """
    tokens = []
    current: list[str] = []
    in_quotes = False
    quoted = False
    escaped = False
    has_token = False

    for char in text:
        if escaped:
            current.append(char)
            escaped = False
            quoted = True
            has_token = True
            continue
        if char == '\\':
            escaped = True
            continue
        if char == '"':
            in_quotes = not in_quotes
            quoted = True
            has_token = True
            continue
        if char.isspace() and not in_quotes:
            if has_token:
                tokens.append((''.join(current), quoted))
            current, quoted, has_token = [], False, False
            continue
        current.append(char)
        has_token = True

    if has_token:
        tokens.append((''.join(current), quoted))
    return tokens


def parse_arguments(segment: str) -> list[str]:
    """Parse one command segment into its argument list."""
    return [token for token, _ in _tokenize(segment)]


def parse_chain(text: str) -> list[list[str]]:
    """
    Split a chain string into per-command argument lists.

    Args:
        text: Commands separated by an unquoted ``--`` token

    Returns:
        One argument list per non-empty command
    """
    if not text or not text.strip():
        return []

    commands: list[list[str]] = []
    current: list[str] = []
    for token, quoted in _tokenize(text):
        if token == COMMAND_SEPARATOR and not quoted:
            if current:
                commands.append(current)
            current = []
        else:
            current.append(token)
    if current:
        commands.append(current)
    return commands


def validate_chain(text: str) -> tuple[bool, Optional[str]]:
    """
    Check a chain string before running it.

    Returns:
        (True, None) when valid, otherwise (False, reason)
    """
    if not text or not text.strip():
        return False, "Command chain cannot be empty"

    quotes = 0
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == '\\':
            escaped = True
        elif char == '"':
            quotes += 1
    if quotes % 2:
        return False, "Unmatched quotes in command chain"

    if not parse_chain(text):
        return False, "Command chain contains no commands"
    return True, None


class ChainExecutionContext:
    """
    Runs the commands of one chain and records each outcome.

    Args:
        commands: Argument list per step
        stop_on_error: Skip the remaining steps after the first failure
        cancel_event: Checked between steps; once set the rest is skipped
    """

    def __init__(
        self,
        commands: list[list[str]],
        stop_on_error: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.commands = [list(c) for c in commands]
        self.stop_on_error = stop_on_error
        self.cancel_event = cancel_event or threading.Event()
        self.state = ChainState.NOT_STARTED
        self.results: list[ChainCommandResult] = []

    def cancel(self) -> None:
        self.cancel_event.set()

    def _skip_rest(self, start: int) -> None:
        for index in range(start, len(self.commands)):
            self._record(ChainCommandResult(
                step=index + 1,
                command_args=self.commands[index],
                status=StepStatus.SKIPPED,
            ))

    def _record(self, result: ChainCommandResult) -> None:
        self.results.append(result)
        level = logging.WARNING if result.status is StepStatus.FAILED else logging.INFO
        logger.log(
            level,
            "Step %d/%d %s (exit %s, %.3fs): %s",
            result.step, len(self.commands), result.status.value,
            result.exit_code, result.duration, shlex.join(result.command_args),
        )

    def run(self, executor: Callable[[list[str]], int]) -> list[ChainCommandResult]:
        """
        Run every step once through executor.

        Args:
            executor: Runs one argument list and returns its exit code

        Returns:
            One result per step, in order

        Raises:
            FatalEnvironmentError: re-raised after the failing step is
                recorded and the remaining steps are marked skipped
        """
        if self.state is not ChainState.NOT_STARTED:
            raise RuntimeError(f"Chain already {self.state.value}")

        self.state = ChainState.RUNNING
        logger.debug("Running chain of %d commands", len(self.commands))

        for index, args in enumerate(self.commands):
            if self.cancel_event.is_set():
                logger.warning("Chain cancelled before step %d", index + 1)
                self._skip_rest(index)
                self.state = ChainState.ABORTED
                return self.results

            started = time.perf_counter()
            try:
                exit_code = executor(args)
                error = None
            except FatalEnvironmentError as e:
                self._record(ChainCommandResult(
                    step=index + 1,
                    command_args=args,
                    status=StepStatus.FAILED,
                    exit_code=1,
                    duration=time.perf_counter() - started,
                    error=str(e),
                ))
                self._skip_rest(index + 1)
                self.state = ChainState.ABORTED
                raise
            except Exception as e:
                exit_code = 1
                error = str(e) or type(e).__name__

            status = StepStatus.SUCCESS if exit_code == 0 else StepStatus.FAILED
            self._record(ChainCommandResult(
                step=index + 1,
                command_args=args,
                status=status,
                exit_code=exit_code,
                duration=time.perf_counter() - started,
                error=error,
            ))

            if status is StepStatus.FAILED and self.stop_on_error:
                self._skip_rest(index + 1)
                self.state = ChainState.ABORTED
                return self.results

        self.state = ChainState.COMPLETED
        return self.results

    @property
    def succeeded(self) -> bool:
        """True iff every recorded step succeeded."""
        return all(r.status is StepStatus.SUCCESS for r in self.results)

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return 0
        for result in self.results:
            if result.status is StepStatus.FAILED and result.exit_code:
                return result.exit_code
        return 1

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'success': self.succeeded,
            'exit_code': self.exit_code,
            'stop_on_error': self.stop_on_error,
            'steps': [r.to_dict() for r in self.results],
        }
