"""Console prompts used to fill gaps in the configuration on a terminal."""

from __future__ import annotations

import getpass
import sys
from typing import Optional, Protocol, Sequence


class Prompter(Protocol):
    def prompt_required(self, label: str, default: Optional[str] = None) -> str: ...

    def prompt_secret(self, label: str) -> str: ...

    def prompt_choice(self, label: str, choices: Sequence[str]) -> str: ...


class ConsolePrompter:
    """Reads answers from stdin; questions go to stderr so stdout stays JSON."""

    def __init__(self, input_fn=input, secret_fn=getpass.getpass, out=None):
        self._input = input_fn
        self._secret = secret_fn
        self._out = out or sys.stderr

    def _say(self, text: str) -> None:
        print(text, file=self._out)

    def prompt_required(self, label: str, default: Optional[str] = None) -> str:
        while True:
            suffix = f" [{default}]" if default else ""
            self._out.write(f"{label}{suffix}: ")
            self._out.flush()
            value = (self._input() or "").strip() or (default or "")
            if value.strip():
                return value.strip()
            self._say("This value is required.")

    def prompt_secret(self, label: str) -> str:
        while True:
            value = self._secret(f"{label}: ")
            if value and value.strip():
                return value
            self._say("This value is required.")

    def prompt_choice(self, label: str, choices: Sequence[str]) -> str:
        if not choices:
            raise ValueError("At least one choice is required.")
        self._say(label)
        for index, choice in enumerate(choices, start=1):
            self._say(f"  {index}. {choice}")
        while True:
            self._out.write("Choose an option: ")
            self._out.flush()
            answer = (self._input() or "").strip()
            if answer.isdigit() and 1 <= int(answer) <= len(choices):
                return choices[int(answer) - 1]
            self._say("Invalid selection.")
