from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_SYSROOT = "/"
_DEFAULT_GRUB_CFG = "/boot/grub2/grub.cfg"

CRYPTTAB_REL = "etc/crypttab"
DRACUT_CONF_REL = "etc/dracut.conf.d/tpm2.conf"
TPMRM_REL = "dev/tpmrm0"


def _expand(path: str) -> str:
    candidate = Path(path).expanduser()
    try:
        return str(candidate.resolve())
    except FileNotFoundError:
        return str(candidate)


def sysroot() -> str:
    """Return the filesystem root the configuration files live under.

    Overridden via ``TPM2UNLOCK_SYSROOT``; defaults to ``/``.  Collaborator
    tools always act on the running host, only the files this tool edits
    directly are resolved against the sysroot.
    """

    override = os.environ.get("TPM2UNLOCK_SYSROOT")
    if override:
        return _expand(override)
    return _DEFAULT_SYSROOT


def _under_sysroot(rel: str) -> str:
    return str(Path(sysroot()) / rel)


def crypttab_path() -> str:
    return _under_sysroot(CRYPTTAB_REL)


def dracut_conf_path() -> str:
    return _under_sysroot(DRACUT_CONF_REL)


def tpmrm_path() -> str:
    return _under_sysroot(TPMRM_REL)


def grub_cfg_path() -> str:
    return os.environ.get("TPM2UNLOCK_GRUB_CFG") or _DEFAULT_GRUB_CFG


def log_dir_override() -> str | None:
    override = os.environ.get("TPM2UNLOCK_LOG_DIR")
    if override:
        return _expand(override)
    return None
