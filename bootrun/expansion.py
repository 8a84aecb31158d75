"""Shell-style parameter expansion for configuration strings.

Only a deliberately small subset of the shell is understood:

* ``${NAME}`` - the variable's value, or an empty string when unset;
* ``${NAME:-default}`` - the value when set and non-empty, else ``default``
  taken literally;
* ``${NAME:?message}`` - the value when set and non-empty, else an error;
* ``$(command)`` - the standard output of ``command`` with trailing newlines
  removed. The command is split into words with POSIX rules and executed
  directly, never through ``/bin/sh``.

The input is scanned once from left to right and substituted text is never
scanned again.
"""

from __future__ import annotations

import os
import re
import shlex
from pathlib import Path
from typing import List, Mapping, Optional, Union

from bootrun.exceptions import ExpansionError
from bootrun.utils import log, run

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _find_closing_paren(text: str, start: int) -> int:
    """Return the index of the ``)`` closing a ``$(`` whose body begins at ``start``."""
    depth = 1
    quote: Optional[str] = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote == "'":
            if ch == "'":
                quote = None
        elif ch == "\\":
            i += 1
        elif quote == '"':
            if ch == '"':
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


class ExpansionEngine:
    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> None:
        self.environ = os.environ if environ is None else environ
        # Commands see exactly the variables that ${NAME} lookups see.
        self.child_env = None if environ is None else dict(environ)
        self.cwd = cwd

    def expand(self, text: str) -> str:
        out: List[str] = []
        pos = 0
        while True:
            idx = text.find("$", pos)
            if idx == -1 or idx + 1 >= len(text):
                out.append(text[pos:])
                break
            out.append(text[pos:idx])
            opener = text[idx + 1]
            if opener == "{":
                end = text.find("}", idx + 2)
                if end == -1:
                    raise ExpansionError(text[idx:], "unterminated '${'")
                out.append(self._expand_variable(text[idx : end + 1], text[idx + 2 : end]))
                pos = end + 1
            elif opener == "(":
                end = _find_closing_paren(text, idx + 2)
                if end == -1:
                    raise ExpansionError(text[idx:], "unterminated '$('")
                out.append(self._substitute_command(text[idx : end + 1], text[idx + 2 : end]))
                pos = end + 1
            else:
                out.append("$")
                pos = idx + 1
        return "".join(out)

    def _lookup(self, name: str) -> Optional[str]:
        return self.environ.get(name)

    def _expand_variable(self, token: str, body: str) -> str:
        for operator in (":-", ":?"):
            if operator in body:
                name, operand = body.split(operator, 1)
                break
        else:
            name, operator, operand = body, "", ""
        if not _NAME_RE.match(name):
            raise ExpansionError(token, "bad substitution")

        value = self._lookup(name)
        if operator == ":-":
            return value if value else operand
        if operator == ":?":
            if not value:
                raise ExpansionError(token, operand or f"{name} is unset or empty")
            return value
        return value or ""

    def _substitute_command(self, token: str, command: str) -> str:
        try:
            argv = shlex.split(command)
        except ValueError as exc:
            raise ExpansionError(token, str(exc)) from exc
        if not argv:
            raise ExpansionError(token, "empty command")

        log("DEBUG", f"Command substitution: {command}")
        try:
            result = run(argv, check=False, cwd=self.cwd, env=self.child_env, capture_output=True)
        except OSError as exc:
            raise ExpansionError(token, str(exc)) from exc
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            cause = f"exited with status {result.returncode}"
            if stderr:
                cause += f": {stderr}"
            raise ExpansionError(token, cause)
        return result.stdout.rstrip("\n")


def expand(
    text: str,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> str:
    return ExpansionEngine(environ, cwd).expand(text)
