"""Detection of unattended (CI / redirected stdin) execution."""

import os
import sys
from typing import Mapping, Optional, TextIO

from .config import CI_ENV_VARS


def is_ci_environment(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return any((environ.get(name) or "").strip() for name in CI_ENV_VARS)


def is_non_interactive(environ: Optional[Mapping[str, str]] = None,
                       stdin: Optional[TextIO] = None) -> bool:
    if is_ci_environment(environ):
        return True
    stdin = sys.stdin if stdin is None else stdin
    try:
        return not stdin.isatty()
    except (AttributeError, ValueError):
        return True
