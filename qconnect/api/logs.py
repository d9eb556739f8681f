"""
Logging setup.

Modules log through plain stdlib loggers under the `qconnect` namespace.
One handler on that logger renders every record with a structlog
ProcessorFormatter: JSON in production, console lines otherwise. Request
correlation data lives on flask.g for the lifetime of one request and is
added to each record while that request is being handled.
"""
import logging
import time
import uuid

import structlog
from flask import g, has_request_context, request

logger = logging.getLogger("qconnect.access")


def add_request_context(_, __, event_dict):
    """Processor: request_id, method, path and user_id of the current request."""
    if not has_request_context():
        return event_dict
    identity = getattr(g, "identity", None)
    event_dict.setdefault("request_id", getattr(g, "request_id", None))
    event_dict.setdefault("method", request.method)
    event_dict.setdefault("path", request.path)
    if identity is not None:
        event_dict.setdefault("user_id", identity.user_id)
    return event_dict


def build_handler(log_format="text", stream=None):
    """StreamHandler whose formatter renders stdlib records through structlog."""
    pre_chain = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(allow=("status", "duration_ms")),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_request_context,
    ]
    if log_format == "json":
        pre_chain.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    return handler


def configure_logging(app):
    """Attach one handler to the package logger, rendered per LOG_FORMAT."""
    root = logging.getLogger("qconnect")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(build_handler(app.config.get("LOG_FORMAT", "text")))
    root.setLevel(app.config.get("LOG_LEVEL", "INFO"))


def init_request_logging(app):
    @app.before_request
    def _start_request():
        g.request_id = (request.headers.get("X-Request-ID") or uuid.uuid4().hex)[:128]
        g.started_at = time.perf_counter()

    @app.after_request
    def _log_response(response):
        started = getattr(g, "started_at", None)
        duration_ms = round((time.perf_counter() - started) * 1000, 2) if started else None
        level = logging.INFO
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        logger.log(
            level,
            "%s %s -> %s", request.method, request.path, response.status_code,
            extra={"status": response.status_code, "duration_ms": duration_ms},
        )
        if getattr(g, "request_id", None):
            response.headers["X-Request-ID"] = g.request_id
        return response
