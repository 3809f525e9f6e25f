"""Logging setup for the georag CLI and embedding applications.

Library modules only create ``logging.getLogger(__name__)`` loggers; handlers
are installed here, once, by the application.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "openai")


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Route the ``georag`` logger hierarchy through a RichHandler on stderr.

    Third-party HTTP/LLM client loggers are capped at WARNING.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("georag")
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
