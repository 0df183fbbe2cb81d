"""Volume identification and read-only TPM2 status detection."""
from __future__ import annotations

from . import bootargs, crypttab, enrollment
from .errors import VolumeResolutionError
from .executil import run, trace
from .model import StatusReport, UnlockState


def _first_line(text: str) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


def luks_uuid_from_blkid() -> str:
    res = run(["blkid", "-t", "TYPE=crypto_LUKS", "-s", "UUID", "-o", "value"], check=False)
    return _first_line(res.out) if res.rc == 0 else ""


def resolve_volume_uuid(explicit: str | None = None) -> str:
    """Find the LUKS root volume UUID.

    The kernel command line of the default boot entry is authoritative
    (``rd.luks.uuid=``); ``blkid`` is only consulted when grubby reports
    nothing.  Raises :class:`VolumeResolutionError` when both come back empty.
    """

    if explicit and explicit.strip():
        trace("probes.uuid", source="explicit", uuid=explicit.strip())
        return explicit.strip()
    uuid = bootargs.parse_luks_uuid(bootargs.kernel_info("DEFAULT"))
    source = "grubby"
    if not uuid:
        uuid = luks_uuid_from_blkid()
        source = "blkid"
    if not uuid:
        raise VolumeResolutionError("could not determine the LUKS volume UUID (grubby and blkid returned nothing)")
    trace("probes.uuid", source=source, uuid=uuid)
    return uuid


def _crypttab_text(path: str | None) -> str:
    try:
        return crypttab.read_text(path)
    except OSError as exc:
        trace("probes.crypttab_unreadable", error=str(exc))
        return ""


def detect(luks_uuid: str, crypttab_path: str | None = None) -> StatusReport:
    report = StatusReport(
        enrolled=enrollment.has_tpm2_slot(enrollment.list_slots(luks_uuid)),
        boot_args=bootargs.has_tpm2_arg(bootargs.kernel_info("ALL")),
        crypttab=crypttab.has_tpm2_option(_crypttab_text(crypttab_path)),
    )
    trace("probes.detect", uuid=luks_uuid, state=report.state.value, **report.as_dict())
    return report


def detect_state(luks_uuid: str, crypttab_path: str | None = None) -> UnlockState:
    return detect(luks_uuid, crypttab_path).state
