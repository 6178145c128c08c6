"""
Command-line interface for pveclient.

Usage (examples):
  - Server version (ticket auth):
      pveclient version --host 10.1.1.90 --host 10.1.1.91:8006 --username root --password secret

  - Generic call (API token, table output):
      pveclient invoke get /nodes --host pve1 --api-token 'root@pam!ci=0000-...' --output table

  - Start a VM and wait for the task:
      UPID=$(pveclient invoke create /nodes/pve1/qemu/100/status/start --output data)
      pveclient wait-task "$UPID" --timeout-ms 60000

Connection settings may also come from pveclient.yml or PVECLIENT_* variables
(see core/config.py).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Any, Dict, Iterable, Optional

from .core.auth import connect
from .core.config import AppConfig, load_config
from .core.errors import ConfigError, ConnectError, PveError
from .core.logging_setup import build_logger
from .core.resources import select_vms
from .core.response import ResponseEnvelope
from .core.session import Session
from .core.tasks import wait_until_finished
from .core.transport import invoke

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_CONNECT_ERROR = 3
EXIT_HTTP_ERROR = 4
EXIT_APP_ERROR = 5
EXIT_TASK_TIMEOUT = 6

OUTPUTS = ("json", "data", "table", "csv")


def _parse_params(items: Iterable[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Parameter must be key=value: {item!r}")
        out[key] = value
    return out


def _connection_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    conn = {
        "hosts": list(args.host) if args.host else None,
        "username": args.username,
        "password": args.password,
        "api_token": args.api_token,
        "otp": args.otp,
        "skip_certificate_check": True if args.insecure else None,
        "timeout_sec": args.timeout_sec,
    }
    logs = {
        "base_dir": args.logs_dir,
        "console_level": args.console_level,
        "file_level": args.file_level,
    }
    return {
        "connection": {k: v for k, v in conn.items() if v is not None},
        "logging": {k: v for k, v in logs.items() if v is not None},
    }


def _open_session(cfg: AppConfig) -> Session:
    c = cfg.connection
    return connect(
        c.hosts,
        c.username,
        c.password,
        api_token=c.api_token,
        otp=c.otp,
        skip_certificate_check=c.skip_certificate_check,
        timeout_sec=c.timeout_sec,
    )


def _emit(res: ResponseEnvelope, output: str, csv_path: Optional[str]) -> None:
    if output == "table":
        table = res.to_table()
        print(table.to_string(index=False) if not table.empty else "(no rows)")
    elif output == "csv":
        if csv_path:
            res.to_csv(csv_path)
        else:
            print(res.to_table().to_csv(index=False), end="")
    elif output == "data":
        data = res.data()
        print(data if isinstance(data, str) else json.dumps(data, indent=2, default=str))
    else:
        body = res.response
        print(body if isinstance(body, str) else json.dumps(body, indent=2, default=str))


def _exit_code_from_response(res: ResponseEnvelope) -> int:
    if not res.success:
        return EXIT_HTTP_ERROR
    if res.is_error():
        return EXIT_APP_ERROR
    return EXIT_OK


def _common_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)

    c = p.add_argument_group("connection")
    c.add_argument("--host", action="append", help="host[:port], repeat for failover candidates")
    c.add_argument("--username", default=None, help="User (realm defaults to @pam)")
    c.add_argument("--password", default=None, help="Password")
    c.add_argument("--api-token", default=None, help="API token USER@REALM!TOKENID=UUID")
    c.add_argument("--otp", default=None, help="Two-factor one-time password")
    c.add_argument("--insecure", action="store_true", help="Skip TLS certificate validation")
    c.add_argument("--timeout-sec", type=int, default=None, help="HTTP timeout seconds")

    lg = p.add_argument_group("logging")
    lg.add_argument("--logs-dir", default=None, help="Logs base directory")
    lg.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    lg.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")
    return p


def _build_arg_parser() -> argparse.ArgumentParser:
    common = _common_parser()
    p = argparse.ArgumentParser(prog="pveclient", description="Proxmox VE API client")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version", parents=[common], help="Print the Proxmox VE version")

    i = sub.add_parser("invoke", parents=[common], help="Call any API resource")
    i.add_argument("verb", help="get | set | create | delete")
    i.add_argument("resource", help="Resource path, e.g. /nodes/pve1/qemu")
    i.add_argument("-p", "--param", action="append", default=[], help="key=value (repeatable)")
    i.add_argument("--response-type", default="json", help="json | extjs | html | text | png | '' (raw)")
    i.add_argument("--output", default="json", choices=OUTPUTS)
    i.add_argument("--csv", dest="csv_path", default=None, help="CSV file for --output csv")

    v = sub.add_parser("vms", parents=[common], help="List VMs and containers")
    v.add_argument("--select", default="@all", help="Selector, e.g. '100:110,-105' or '@pool-prod'")
    v.add_argument("--output", default="table", choices=OUTPUTS)
    v.add_argument("--csv", dest="csv_path", default=None, help="CSV file for --output csv")

    w = sub.add_parser("wait-task", parents=[common], help="Wait for a task (UPID) to finish")
    w.add_argument("upid")
    w.add_argument("--poll-ms", type=int, default=None, help="Poll interval (ms)")
    w.add_argument("--timeout-ms", type=int, default=None, help="Timeout (ms)")
    return p


def _version_cmd(args: argparse.Namespace, cfg: AppConfig, log: logging.LoggerAdapter) -> int:
    res = invoke("/version", "Get", session=_open_session(cfg))
    if not res.success:
        log.error("Version query failed: %s %s", res.status_code, res.reason)
        return EXIT_HTTP_ERROR
    data = res.data() if isinstance(res.data(), dict) else {}
    print(f"{data.get('version', '?')} (release {data.get('release', '?')}, repoid {data.get('repoid', '?')})")
    return EXIT_OK


def _invoke_cmd(args: argparse.Namespace, cfg: AppConfig, log: logging.LoggerAdapter) -> int:
    params = _parse_params(args.param)
    session = _open_session(cfg)
    res = invoke(args.resource, args.verb, params, args.response_type, session=session)
    log.info("%s", res)
    if not res.success:
        log.error("Call failed: %s %s", res.status_code, res.reason)
        for key, msg in res.errors().items():
            log.error("  %s: %s", key, msg)
    _emit(res, args.output, args.csv_path)
    return _exit_code_from_response(res)


def _vms_cmd(args: argparse.Namespace, cfg: AppConfig, log: logging.LoggerAdapter) -> int:
    session = _open_session(cfg)
    listing = invoke("/cluster/resources", "Get", {"type": "vm"}, session=session)
    if not listing.success:
        log.error("Unable to list guests: %s %s", listing.status_code, listing.reason)
        return EXIT_HTTP_ERROR
    if listing.is_error():
        log.error("Unable to list guests: %s", listing.response.get("error"))
        return EXIT_APP_ERROR

    data = listing.data()
    rows = [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []
    records = select_vms(rows, args.select)
    log.info("Selected %d guests with %r", len(records), args.select)
    res = replace(listing, response={"data": records})
    _emit(res, args.output, args.csv_path)
    return EXIT_OK


def _wait_task_cmd(args: argparse.Namespace, cfg: AppConfig, log: logging.LoggerAdapter) -> int:
    session = _open_session(cfg)
    poll = args.poll_ms if args.poll_ms is not None else cfg.tasks.poll_interval_ms
    timeout = args.timeout_ms if args.timeout_ms is not None else cfg.tasks.timeout_ms
    finished = wait_until_finished(args.upid, poll, timeout, session=session)
    if not finished:
        log.error("Task %s did not finish within %sms", args.upid, timeout)
        return EXIT_TASK_TIMEOUT
    log.info("Task %s finished", args.upid)
    return EXIT_OK


_COMMANDS = {
    "version": _version_cmd,
    "invoke": _invoke_cmd,
    "vms": _vms_cmd,
    "wait-task": _wait_task_cmd,
}


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        cfg = load_config(_connection_overrides(args))
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    log = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
    )

    try:
        return _COMMANDS[args.cmd](args, cfg, log)
    except ConnectError as exc:
        log.error("Connection failed: %s", exc)
        return EXIT_CONNECT_ERROR
    except (PveError, ValueError) as exc:
        log.error("%s", exc)
        return EXIT_GENERIC_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
