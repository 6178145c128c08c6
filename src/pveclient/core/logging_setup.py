"""
Central logging for the pveclient CLI.

- Console handler on stderr (level from config, INFO by default)
- Timed rotated file handler: <base_dir>/app.log, daily rotation
- Per-run file handler: <base_dir>/YYYY-MM-DD/<action>_<run_id>.log
- Secret redaction: tickets, CSRF tokens, API tokens and passwords
- Timestamps are UTC, e.g. 2026-10-18T09:15:02Z

Library modules only use named loggers ("pve.http", "pve.auth", ...);
handlers are installed here, by the CLI.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone


class MaskSecretsFilter(logging.Filter):
    """
    Redact Proxmox credentials from log records (message and % args).
    """

    _patterns = [
        re.compile(r"(PVEAuthCookie\s*[=:]\s*)([^;,\s]+)", re.IGNORECASE),
        re.compile(r"(CSRFPreventionToken['\"]?\s*[=:]\s*['\"]?)([^'\",\s]+)", re.IGNORECASE),
        re.compile(r"(PVEAPIToken[\s=]+)([^\s,'\"]+)", re.IGNORECASE),
        re.compile(r"(password['\"]?\s*[=:]\s*['\"]?)([^'\",\s]+)", re.IGNORECASE),
        re.compile(r"(\bticket['\"]?\s*[=:]\s*['\"]?)([^'\",\s]+)", re.IGNORECASE),
        re.compile(r"(PVE:[^:\s]+:)([A-F0-9]{8}::\S+)"),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(
                    self._mask(a) if isinstance(a, str) else a for a in record.args
                )
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _replace_console_handler(
    base_logger: logging.Logger,
    *,
    console_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    Exactly one StreamHandler bound to the current sys.stderr
    (pytest may replace stdio between tests).
    """
    for h in list(base_logger.handlers):
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            base_logger.removeHandler(h)
            h.close()

    sh = logging.StreamHandler(stream=sys.stderr)
    sh.setLevel(_level(console_level, logging.INFO))
    sh.setFormatter(formatter)
    sh.addFilter(mask)
    base_logger.addHandler(sh)


def _replace_app_file_handler(
    base_logger: logging.Logger,
    *,
    base_dir: str,
    file_level: str,
    formatter: logging.Formatter,
    mask: logging.Filter,
) -> None:
    """
    One TimedRotatingFileHandler pointing to <base_dir>/app.log for the current
    working directory; a handler left over for another path is replaced.
    """
    os.makedirs(base_dir, exist_ok=True)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))

    for h in list(base_logger.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(getattr(h, "baseFilename", "")) == desired:
                return
            base_logger.removeHandler(h)
            h.close()

    rh = logging.handlers.TimedRotatingFileHandler(
        desired,
        when="midnight",
        backupCount=14,
        encoding="utf-8",
        utc=True,
    )
    rh.setLevel(_level(file_level, logging.DEBUG))
    rh.setFormatter(formatter)
    rh.addFilter(mask)
    base_logger.addHandler(rh)


def build_logger(
    *,
    name: str = "pve",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
) -> logging.LoggerAdapter:
    """
    Adapter for one CLI run, tagging records with run_id and action.

    Console and app.log handlers sit on `<name>`, which also collects
    `pve.http`, `pve.auth` and the other library loggers. Only the adapter's
    own logger `<name>.<action>.<run_id>` writes to the per-run file.
    """
    mask = MaskSecretsFilter()
    formatter = _utc_formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | run=%(run_id)s action=%(action)s | %(message)s"
    )
    # library records carry no run/action extras
    plain = _utc_formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    _replace_console_handler(base, console_level=console_level, formatter=plain, mask=mask)
    _replace_app_file_handler(base, base_dir=base_dir, file_level=file_level, formatter=plain, mask=mask)

    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True

    if not getattr(child, "_pve_action_configured", False):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        os.makedirs(dated_dir, exist_ok=True)
        action_file = os.path.join(dated_dir, f"{action}_{run_id}.log")

        fh = logging.FileHandler(action_file, encoding="utf-8")
        fh.setLevel(_level(file_level, logging.DEBUG))
        fh.setFormatter(formatter)
        fh.addFilter(mask)
        child.addHandler(fh)
        child._pve_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(child, {"run_id": run_id, "action": action})
    adapter.debug("Logger initialised")
    return adapter
