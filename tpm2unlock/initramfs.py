"""Dracut TPM2 module configuration and initramfs rebuild."""

from __future__ import annotations

import os
from typing import Any, Dict

from . import paths
from .errors import DracutConfError, InitramfsError
from .executil import run, trace

DRACUT_DIRECTIVE = 'add_dracutmodules+=" tpm2-tss "\n'


def write_dracut_conf(path: str | None = None, dry_run: bool = False) -> Dict[str, Any]:
    conf = path or paths.dracut_conf_path()
    if dry_run:
        return {"path": conf, "written": False}
    try:
        os.makedirs(os.path.dirname(conf), exist_ok=True)
        with open(conf, "w", encoding="utf-8") as fh:
            fh.write(DRACUT_DIRECTIVE)
            try:
                fh.flush()
                os.fsync(fh.fileno())
            except OSError:
                pass
    except OSError as exc:
        raise DracutConfError(f"cannot write {conf}: {exc}", path=conf) from exc
    trace("initramfs.dracut_conf.write", path=conf)
    return {"path": conf, "written": True}


def remove_dracut_conf(path: str | None = None, dry_run: bool = False) -> Dict[str, Any]:
    conf = path or paths.dracut_conf_path()
    existed = os.path.isfile(conf)
    if existed and not dry_run:
        os.remove(conf)
    trace("initramfs.dracut_conf.remove", path=conf, existed=existed, dry_run=dry_run)
    return {"path": conf, "existed": existed, "removed": existed and not dry_run}


def rebuild(dry_run: bool = False) -> Dict[str, Any]:
    res = run(["dracut", "--force", "--regenerate-all"], check=False, dry_run=dry_run)
    if res.rc != 0:
        raise InitramfsError(
            f"dracut rebuild failed: rc={res.rc}",
            rc=res.rc,
            err=(res.err or "").strip(),
        )
    return {"rc": res.rc, "duration_sec": getattr(res, "duration", None)}
