"""Persistent kernel arguments via grubby, and grub.cfg regeneration."""

from __future__ import annotations

import re

from . import paths
from .crypttab import TPM2_OPTION
from .errors import BootArgsError, GrubConfigError
from .executil import Result, run

KERNEL_ARG = f"rd.luks.options={TPM2_OPTION}"

_TPM2_ARG_RE = re.compile(r"(?:^|[\s\"])rd\.luks\.options=\S*tpm2-device=")
_LUKS_UUID_RE = re.compile(r"(?:^|[\s\"])rd\.luks\.uuid=(?:luks-)?([0-9A-Za-z][0-9A-Za-z-]*)")


def _args_lines(info_text: str) -> list[str]:
    return [line.strip() for line in info_text.splitlines() if line.strip().startswith("args=")]


def has_tpm2_arg(info_text: str) -> bool:
    """True when any kernel entry in ``grubby --info`` output has the TPM2 option."""

    return any(_TPM2_ARG_RE.search(line) for line in _args_lines(info_text))


def parse_luks_uuid(info_text: str) -> str:
    for line in _args_lines(info_text):
        m = _LUKS_UUID_RE.search(line)
        if m:
            return m.group(1)
    return ""


def kernel_info(which: str = "ALL") -> str:
    res = run(["grubby", f"--info={which}"], check=False)
    return (res.out or "") if res.rc == 0 else ""


def add_tpm2_arg(dry_run: bool = False) -> Result:
    res = run(["grubby", "--update-kernel=ALL", f"--args={KERNEL_ARG}"], check=False, dry_run=dry_run)
    if res.rc != 0:
        raise BootArgsError(
            f"grubby failed to add {KERNEL_ARG}: rc={res.rc}",
            rc=res.rc,
            err=(res.err or "").strip(),
        )
    return res


def remove_tpm2_arg(dry_run: bool = False) -> Result:
    # best effort: the caller decides how loud a failure is
    return run(["grubby", "--update-kernel=ALL", f"--remove-args={KERNEL_ARG}"], check=False, dry_run=dry_run)


def regenerate_grub_cfg(dry_run: bool = False) -> Result:
    target = paths.grub_cfg_path()
    res = run(["grub2-mkconfig", "-o", target], check=False, dry_run=dry_run)
    if res.rc != 0:
        raise GrubConfigError(
            f"grub2-mkconfig -o {target} failed: rc={res.rc}",
            rc=res.rc,
            err=(res.err or "").strip(),
        )
    return res
