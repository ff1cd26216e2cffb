from __future__ import annotations

import json
import logging
import os
import re
import signal
import threading

from patcher.src.config import ConfigError, load_config
from patcher.src.controller import PullSecretPatcher
from patcher.src.errors import PatcherError
from patcher.src.health import start_health_server
from patcher.src.kube import KubeClusterState, build_core_api, load_kube_configuration
from patcher.src.metrics import METRICS

RUNTIME_VERSION = "0.3.0"
_REDACTION_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._~+/=-]+)"),
        r"\1[REDACTED]",
    ),
    (
        re.compile(
            r"(?i)(\b(?:authorization|token|password|passwd|secret|api[_-]?key)\b\s*[:=]\s*)([^\s,;]+)"
        ),
        r"\1[REDACTED]",
    ),
    # docker config.json credentials: {"auths": {"host": {"auth": "..."}}}
    (
        re.compile(r'(?i)("(?:auth|password|identitytoken|registrytoken)"\s*:\s*")([^"]*)'),
        r"\1[REDACTED]",
    ),
)


def redact_sensitive_text(value: str) -> str:
    redacted = value
    for pattern, replacement in _REDACTION_RULES:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class JSONFormatter(logging.Formatter):
    """Emit logs as single-line JSON objects for structured log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_sensitive_text(record.getMessage()),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["error"] = redact_sensitive_text(self.formatException(record.exc_info))
        return json.dumps(log_entry)


def configure_logging(level: str) -> None:
    log_handler = logging.StreamHandler()
    log_handler.setFormatter(JSONFormatter())
    logging.root.addHandler(log_handler)
    logging.root.setLevel(getattr(logging, level, logging.INFO))


def main() -> None:
    """Patcher entrypoint: load config, configure logging, and run reconciliation cycles."""
    config = load_config()
    configure_logging(config.log_level)
    logger = logging.getLogger(__name__)
    METRICS.build_info.info(
        {
            "version": os.getenv("APP_VERSION", RUNTIME_VERSION),
            "revision": os.getenv("GIT_SHA", "unknown"),
        }
    )
    logger.info("Application started")

    load_kube_configuration()
    patcher = PullSecretPatcher(cluster=KubeClusterState(build_core_api()), config=config)
    health_server = start_health_server(
        ready=patcher.ready, port=config.health_port, status=patcher.status
    )

    shutdown_event = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logger.info("Received signal %d, shutting down", signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    try:
        patcher.run_forever(shutdown_event=shutdown_event)
    except (ConfigError, PatcherError):
        logger.exception("Reconciliation cycle aborted; exiting for restart")
        raise SystemExit(1) from None
    finally:
        health_server.shutdown()
    logger.info("Patcher stopped")


if __name__ == "__main__":
    main()
