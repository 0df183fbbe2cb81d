from __future__ import annotations

"""Subprocess wrapper with JSON-lines trace logging and a dry-run hook."""

import datetime as _dt
import json
import os
import shlex
import subprocess
import sys
import time
from typing import Sequence

from .paths import log_dir_override

LOG_NAME = "tpm2-unlock.jsonl"
LOG_DIRS: list[str] | None = None
LOG_PATH: str | None = None


def _log_dirs() -> list[str]:
    if LOG_DIRS:
        return list(LOG_DIRS)
    dirs = []
    override = log_dir_override()
    if override:
        dirs.append(override)
    dirs.extend(["/var/log/tpm2-unlock", "/tmp/tpm2-unlock-logs"])
    return dirs


def _ensure_logger() -> str | None:
    global LOG_PATH
    if LOG_PATH:
        return LOG_PATH
    for d in _log_dirs():
        d_expanded = os.path.expanduser(d)
        try:
            os.makedirs(d_expanded, exist_ok=True)
            LOG_PATH = os.path.join(d_expanded, LOG_NAME)
            return LOG_PATH
        except OSError:
            continue
    LOG_PATH = None
    return None


def resolve_log_path() -> str | None:
    """Return the active log path, creating directories when possible."""

    return _ensure_logger()


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _write_jsonl(obj: dict):
    path = _ensure_logger()
    try:
        if path:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(obj) + "\n")
    except OSError:
        pass


def _log_event(kind: str, cmd: list[str], rc: int = None, out: str = None, err: str = None, dur: float = None):
    _write_jsonl({"ts": _now(), "kind": kind, "cmd": cmd, "rc": rc, "dur": dur, "out": out, "err": err})


class Result:
    def __init__(self, rc: int, out: str, err: str, duration: float):
        self.rc, self.out, self.err, self.duration = rc, out, err, duration


LEVELS = {"TRACE": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "NONE": 100}
LOG_LEVEL = os.environ.get("TPM2UNLOCK_LOG_LEVEL", "TRACE").upper()


def log(level: str, event: str, **fields):
    lvl = LEVELS.get(level.upper(), 100)
    cur = LEVELS.get(LOG_LEVEL, 100)
    if lvl < cur:
        return
    rec = {"ts": _now(), "level": level.upper(), "event": event}
    rec.update(fields)
    _write_jsonl(rec)


def trace(event: str, **fields):
    log("TRACE", event, **fields)


def render(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(c) for c in cmd)


def run(
    cmd: Sequence[str],
    check: bool = True,
    dry_run: bool = False,
    timeout: float | None = None,
    env: dict | None = None,
    interactive: bool = False,
) -> Result:
    """Run ``cmd`` and return its :class:`Result`.

    ``interactive`` leaves stdin/stdout/stderr attached to the terminal so a
    collaborator can prompt the operator (passphrase entry); output is then
    not captured.  There is no default timeout: blocking on the operator is
    expected.
    """

    trace("exec.start", cmd=list(cmd), interactive=interactive)
    _log_event("exec", list(cmd))
    started = time.time()
    if dry_run:
        text = "DRY-RUN: " + render(cmd)
        print(text, file=sys.stderr)
        return Result(0, text, "", 0.0)
    env2 = (env or os.environ).copy()
    env2.setdefault("TPM2UNLOCK_LOG_LEVEL", LOG_LEVEL)
    try:
        if interactive:
            proc = subprocess.run(cmd, text=True, timeout=timeout, env=env2)
            rc, out, err = proc.returncode, "", ""
        else:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, env=env2)
            rc, out, err = proc.returncode, proc.stdout or "", proc.stderr or ""
    except FileNotFoundError as exc:
        # same convention as the shell: command not found
        rc, out, err = 127, "", str(exc)
    dur = time.time() - started
    trace("exec.done", cmd=list(cmd), rc=rc, dur=dur)
    _log_event("done", list(cmd), rc=rc, out=out, err=err, dur=dur)
    if check and rc != 0:
        raise subprocess.CalledProcessError(rc, cmd, out, err)
    return Result(rc, out, err, dur)


def append_jsonl(path: str, obj: dict):
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False) + "\n")
    except OSError:
        pass
