"""Guards that must hold before anything is changed."""

from __future__ import annotations

import os
import re

from . import enrollment, paths
from .errors import NotRootError, SecureBootError, TpmDeviceError
from .executil import run, trace

_SB_ENABLED_RE = re.compile(r"secureboot\s+enabled", re.I)


def require_root() -> None:
    if os.geteuid() != 0:
        raise NotRootError("must be run as root")


def secure_boot_enabled(sb_state: str) -> bool:
    """Parse ``mokutil --sb-state`` output."""

    return bool(_SB_ENABLED_RE.search(sb_state or ""))


def check_secure_boot() -> bool:
    res = run(["mokutil", "--sb-state"], check=False)
    # mokutil exits non-zero on legacy BIOS systems; the text is still parsed
    return secure_boot_enabled(f"{res.out or ''}\n{res.err or ''}")


def tpm2_devices() -> list[str]:
    found = enrollment.list_tpm2_devices()
    if not found and os.path.exists(paths.tpmrm_path()):
        found = [paths.tpmrm_path()]
    return found


def validate_enable_preconditions() -> dict:
    """Secure Boot first, then the TPM2 device; either failing aborts."""

    if not check_secure_boot():
        raise SecureBootError("Secure Boot is not enabled; refusing to seal the volume key to the TPM")
    devices = tpm2_devices()
    if not devices:
        raise TpmDeviceError("no TPM2 device found")
    trace("preconditions.ok", tpm2_devices=devices)
    return {"secure_boot": True, "tpm2_devices": devices}
