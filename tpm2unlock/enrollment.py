"""TPM2 key-slot lifecycle on the LUKS volume (systemd-cryptenroll)."""

from __future__ import annotations

import re

from .errors import EnrollmentError
from .executil import Result, run

_SLOT_RE = re.compile(r"^\s*(\d+)\s+(\S+)")
_TPM_NODE_RE = re.compile(r"/dev/tpmrm\d+")


def device_path(luks_uuid: str) -> str:
    return f"/dev/disk/by-uuid/{luks_uuid}"


def parse_slots(listing: str) -> dict[int, str]:
    """Map slot index to slot type from ``systemd-cryptenroll <dev>`` output."""

    slots: dict[int, str] = {}
    for line in listing.splitlines():
        m = _SLOT_RE.match(line)
        if m:
            slots[int(m.group(1))] = m.group(2).lower()
    return slots


def has_tpm2_slot(listing: str) -> bool:
    return "tpm2" in parse_slots(listing).values()


def list_slots(luks_uuid: str) -> str:
    res = run(["systemd-cryptenroll", device_path(luks_uuid)], check=False)
    return (res.out or "") if res.rc == 0 else ""


def parse_tpm2_devices(listing: str) -> list[str]:
    return _TPM_NODE_RE.findall(listing)


def list_tpm2_devices() -> list[str]:
    res = run(["systemd-cryptenroll", "--tpm2-device=list"], check=False)
    return parse_tpm2_devices(res.out or "") if res.rc == 0 else []


def enroll_tpm2(luks_uuid: str, pcrs: str = "7", dry_run: bool = False) -> Result:
    """Wipe any TPM2 slot and enroll a fresh one bound to ``pcrs``.

    The tool asks for an existing passphrase on the terminal, so the call is
    interactive and blocks until the operator answers.
    """

    cmd = [
        "systemd-cryptenroll",
        "--wipe-slot=tpm2",
        "--tpm2-device=auto",
        f"--tpm2-pcrs={pcrs}",
        device_path(luks_uuid),
    ]
    res = run(cmd, check=False, dry_run=dry_run, interactive=True)
    if res.rc != 0:
        raise EnrollmentError(f"systemd-cryptenroll enrollment failed: rc={res.rc}", rc=res.rc)
    return res


def wipe_tpm2(luks_uuid: str, dry_run: bool = False) -> Result:
    return run(
        ["systemd-cryptenroll", "--wipe-slot=tpm2", device_path(luks_uuid)],
        check=False,
        dry_run=dry_run,
        interactive=True,
    )
