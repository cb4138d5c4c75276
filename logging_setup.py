import logging
import sys
from typing import Union

_OWN_LOGGERS = (
    "__main__",
    "main",
    "repository",
    "hierarchy",
    "breakdown",
    "llm",
    "db_context",
)


class _ThirdPartyNoiseFilter(logging.Filter):
    """Keep service logs; let other libraries through only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name.split(".", 1)[0]
        if name in _OWN_LOGGERS or name.startswith("uvicorn"):
            return True
        if record.name == "py.warnings":
            return record.levelno >= logging.ERROR
        return record.levelno >= logging.WARNING


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Install one stderr handler on the root logger.

    Call once, before the app starts serving. Calling again replaces the
    handler instead of stacking a second one.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(fmt)
    handler.addFilter(_ThirdPartyNoiseFilter())
    root.addHandler(handler)

    logging.captureWarnings(True)
