"""Log routing for staffdb.

Library modules log through ``logging.getLogger(__name__)``; structlog's
ProcessorFormatter renders those records to stderr, as console lines or
JSON (``--log-json``). Every event carries:

- ``component``: the layer that emitted it (``pool``, ``executor``,
  ``transactions``, ``repositories``, ...);
- ``store``: the display URL of the store in use, when one is bound.

Statement traces from the executor are DEBUG events kept behind their own
switch (``trace_statements``), so ``--verbose`` shows pool and transaction
activity without one line per statement. Traces carry parameter names only.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

ROOT_LOGGER = "staffdb"
STATEMENT_LOGGER = "staffdb.infrastructure.database.executor"


def _component(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Derive ``component`` from the emitting logger's dotted name."""
    name = event_dict.get("logger") or ""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        event_dict.setdefault("component", name.rsplit(".", 1)[-1])
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _route_levels(*, verbose: bool, trace_statements: bool) -> None:
    layer_level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger(ROOT_LOGGER).setLevel(layer_level)
    if trace_statements:
        logging.getLogger(STATEMENT_LOGGER).setLevel(logging.DEBUG)
    else:
        logging.getLogger(STATEMENT_LOGGER).setLevel(max(layer_level, logging.INFO))
    # SQLAlchemy's echo output would duplicate the statement traces.
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    trace_statements: bool = False,
    store: str | None = None,
) -> None:
    """Route staffdb logs to stderr.

    Args:
        verbose: DEBUG for pool, repository and transaction events; only
            WARNING and above otherwise.
        log_json: JSON lines instead of console output.
        trace_statements: Emit one DEBUG event per executed statement.
        store: Display URL bound to every event as ``store``.
    """
    shared = _shared_processors()
    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    _route_levels(verbose=verbose, trace_statements=trace_statements)

    structlog.contextvars.clear_contextvars()
    if store:
        structlog.contextvars.bind_contextvars(store=store)
