"""Session log file handling.

The session log is a plain-text record of one pipeline run. The reflect
tool parses it back (see core.session), so the markers written through
session_logger must stay stable.
"""

import logging
from datetime import datetime, timezone

SESSION_LOGGER = "forgeloop.session"
_FORMAT = "[%(asctime)s] %(message)s"

session_logger = logging.getLogger(SESSION_LOGGER)
session_logger.propagate = False   # console output is printed by the CLI


def open_session_log(path, resume=False):
    """Attach a FileHandler for this run and return it.

    A new run truncates the file and writes a header; a resumed run appends
    a RESUMED AT marker instead.
    """
    now = datetime.now(timezone.utc).isoformat()
    with open(path, "a" if resume else "w", encoding="utf-8") as f:
        if resume:
            f.write(f"\n\n=== RESUMED AT {now} ===\n\n")
        else:
            f.write(f"QA Pipeline Log - {now}\n\n")

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT))
    session_logger.addHandler(handler)
    session_logger.setLevel(logging.INFO)
    return handler


def close_session_log(handler):
    session_logger.removeHandler(handler)
    handler.close()


def configure_logging(verbose=False):
    """Console logging for the CLI entry points."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
