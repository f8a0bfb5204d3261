"""Run-wide confirmation session.

Destructive operations ask the session before acting. The session starts
from the operator's assume-yes setting; answering ``a``/``all`` once
upgrades it to auto-accept for the rest of the run, for every repository
and every step.

The session object is passed to every call site. The run-wide asyncio lock
owned by RunState guards both the flag and the prompt, so concurrent
workers never interleave prompts and never miss an upgrade made by another
worker.
"""

import asyncio
from dataclasses import dataclass
from typing import Protocol

import click
import structlog

log = structlog.get_logger(__name__)

YES_RESPONSES = {"y", "yes"}
ALL_RESPONSES = {"a", "all"}


@dataclass(frozen=True)
class ConfirmationResult:
    """Answer to one confirmation prompt."""

    confirmed: bool
    apply_to_all: bool = False


class Prompter(Protocol):
    """Blocking interactive prompt returning the raw response text."""

    def ask(self, prompt: str) -> str: ...


class ConsolePrompter:
    """Prompt on the terminal with click."""

    def ask(self, prompt: str) -> str:
        return str(click.prompt(f"{prompt} [y/N/a]", default="", show_default=False, err=True))


def interpret_response(response: str) -> ConfirmationResult:
    """Map raw prompt text to a result; anything unrecognized declines."""
    normalized = response.strip().lower()
    if normalized in ALL_RESPONSES:
        return ConfirmationResult(confirmed=True, apply_to_all=True)
    return ConfirmationResult(confirmed=normalized in YES_RESPONSES)


class ConfirmationSession:
    """Shared confirmation state for one run.

    Args:
        assume_yes: Initial auto-accept flag
        prompter: Interactive prompt, required unless ``assume_yes`` is set
        lock: Run-wide lock, a private one when omitted
    """

    def __init__(
        self,
        assume_yes: bool = False,
        prompter: Prompter | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self._assume_yes = assume_yes
        self._prompter = prompter
        self._lock = lock or asyncio.Lock()

    @property
    def assume_yes(self) -> bool:
        return self._assume_yes

    async def confirm(self, prompt: str) -> ConfirmationResult:
        """Ask for confirmation, or auto-accept once the session is upgraded.

        Without a prompter, anything that is not auto-accepted is declined.
        """
        async with self._lock:
            if self._assume_yes:
                return ConfirmationResult(confirmed=True)
            if self._prompter is None:
                log.warning("confirmation_unavailable", prompt=prompt)
                return ConfirmationResult(confirmed=False)

            response = await asyncio.to_thread(self._prompter.ask, prompt)
            result = interpret_response(response)
            if result.apply_to_all:
                self._assume_yes = True
                log.info("confirmation_apply_to_all")
            return result
