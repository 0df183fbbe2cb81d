"""Enable/disable branches, boot-chain finalization and reboot."""

from __future__ import annotations

from typing import Any, Dict

from . import bootargs, console, crypttab, enrollment, initramfs, probes
from .errors import CrypttabError
from .executil import run, trace
from .model import ApplyReport, StatusReport, TargetAction, UnlockState


def apply_enable(
        luks_uuid: str,
        pcrs: str = "7",
        dry_run: bool = False,
        *,
        crypttab_path: str | None = None,
        dracut_conf_path: str | None = None,
) -> ApplyReport:
    """Enroll the TPM2 slot and point kernel args, crypttab and dracut at it.

    Every step is fatal; the first failure propagates and later steps never
    run.  Nothing already applied is rolled back.
    """

    report = ApplyReport(TargetAction.ENABLE)

    console.info("Enrolling TPM2 key slot (enter the existing LUKS passphrase when asked)")
    res = enrollment.enroll_tpm2(luks_uuid, pcrs=pcrs, dry_run=dry_run)
    report.step("enroll", rc=res.rc, pcrs=pcrs)
    console.ok("would enroll TPM2 key slot" if dry_run else "TPM2 key slot enrolled")

    res = bootargs.add_tpm2_arg(dry_run=dry_run)
    report.step("boot_args", rc=res.rc, arg=bootargs.KERNEL_ARG)
    console.ok(f"{'would add' if dry_run else 'added'} {bootargs.KERNEL_ARG} to all kernels")

    try:
        written = crypttab.write_tpm2_crypttab(luks_uuid, path=crypttab_path, dry_run=dry_run)
    except OSError as exc:
        raise CrypttabError(f"cannot write crypttab: {exc}") from exc
    report.step("crypttab", path=written["path"], line=written["line"], discarded=written["discarded"])
    if written["discarded"]:
        # whole-file replacement drops entries for other volumes
        report.warn(
            f"crypttab overwritten; {len(written['discarded'])} previous entr"
            f"{'y' if len(written['discarded']) == 1 else 'ies'} discarded: "
            + "; ".join(written["discarded"])
        )
        console.warn(report.warnings[-1])
    console.ok(f"crypttab {'would read' if dry_run else 'now reads'}: {written['line']}")

    conf = initramfs.write_dracut_conf(path=dracut_conf_path, dry_run=dry_run)
    report.step("dracut_conf", **conf)
    console.ok(f"dracut tpm2-tss module {'would be ' if dry_run else ''}configured in {conf['path']}")

    trace("controller.enable", uuid=luks_uuid, steps=report.steps, warnings=report.warnings)
    return report


def apply_disable(
        luks_uuid: str,
        dry_run: bool = False,
        *,
        crypttab_path: str | None = None,
        dracut_conf_path: str | None = None,
) -> ApplyReport:
    """Undo TPM2 auto-unlock.  Failures here are warnings, never fatal."""

    report = ApplyReport(TargetAction.DISABLE)

    console.info("Wiping TPM2 key slot")
    res = enrollment.wipe_tpm2(luks_uuid, dry_run=dry_run)
    report.step("wipe", rc=res.rc)
    if res.rc != 0:
        report.warn(f"systemd-cryptenroll --wipe-slot=tpm2 failed (rc={res.rc}); the slot may not have existed")
        console.warn(report.warnings[-1])
    else:
        console.ok("would wipe TPM2 key slot" if dry_run else "TPM2 key slot wiped")

    res = bootargs.remove_tpm2_arg(dry_run=dry_run)
    report.step("boot_args", rc=res.rc, arg=bootargs.KERNEL_ARG)
    if res.rc != 0:
        report.warn(f"grubby could not remove {bootargs.KERNEL_ARG} (rc={res.rc})")
        console.warn(report.warnings[-1])
    else:
        console.ok(f"{'would remove' if dry_run else 'removed'} {bootargs.KERNEL_ARG} from all kernels")

    try:
        removed = crypttab.remove_tpm2_lines(path=crypttab_path, dry_run=dry_run)
    except (OSError, ValueError) as exc:
        report.warn(f"could not edit crypttab: {exc}")
        console.warn(report.warnings[-1])
        report.step("crypttab", error=str(exc))
    else:
        report.step("crypttab", **removed)
        if removed["removed"]:
            verb = "would remove" if dry_run else "removed"
            console.ok(f"{verb} {len(removed['removed'])} TPM2 line(s) from {removed['path']}")
        else:
            console.info(f"no TPM2 entry in {removed['path']}; nothing to remove")

    try:
        conf = initramfs.remove_dracut_conf(path=dracut_conf_path, dry_run=dry_run)
    except OSError as exc:
        report.warn(f"could not remove dracut config: {exc}")
        console.warn(report.warnings[-1])
        report.step("dracut_conf", error=str(exc))
    else:
        report.step("dracut_conf", **conf)
        if conf["existed"]:
            console.ok(f"{'would remove' if dry_run else 'removed'} {conf['path']}")
        else:
            console.info(f"{conf['path']} not present; nothing to remove")

    trace("controller.disable", uuid=luks_uuid, steps=report.steps, warnings=report.warnings)
    return report


_EXPECTED = {TargetAction.ENABLE: UnlockState.ENABLED, TargetAction.DISABLE: UnlockState.DISABLED}


def verify(luks_uuid: str, report: ApplyReport, *, crypttab_path: str | None = None) -> StatusReport:
    """Re-detect after applying and record a warning when the target was missed."""

    status = probes.detect(luks_uuid, crypttab_path)
    if status.state is not _EXPECTED[report.action]:
        report.warn(
            f"TPM2 auto-unlock still reports {status.state.value} "
            f"(positive signals: {', '.join(status.positive()) or 'none'})"
        )
        console.warn(report.warnings[-1])
    elif report.action is TargetAction.ENABLE and not status.consistent:
        missing = [name for name, value in status.as_dict().items() if not value]
        report.warn("TPM2 auto-unlock only partially enabled; missing: " + ", ".join(missing))
        console.warn(report.warnings[-1])
    return status


def finalize(dry_run: bool = False) -> Dict[str, Any]:
    """Regenerate grub.cfg, then rebuild the initramfs.  Both fatal."""

    console.info("Regenerating GRUB configuration")
    grub = bootargs.regenerate_grub_cfg(dry_run=dry_run)
    console.ok("would regenerate GRUB configuration" if dry_run else "GRUB configuration regenerated")
    console.info("Rebuilding initramfs (this can take a while)")
    image = initramfs.rebuild(dry_run=dry_run)
    console.ok("would rebuild initramfs" if dry_run else "initramfs rebuilt")
    return {"grub": {"rc": grub.rc, "duration_sec": getattr(grub, "duration", None)}, "initramfs": image}


def reboot(dry_run: bool = False):
    return run(["systemctl", "reboot"], check=True, dry_run=dry_run)
