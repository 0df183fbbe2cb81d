"""CLI entrypoint for toggling TPM2 auto-unlock of the LUKS root volume."""

from __future__ import annotations

import argparse
import json
import subprocess
import sys
import time
from typing import Any, Dict, Optional

from . import console, controller, preconditions, probes
from .errors import UnlockError
from .executil import append_jsonl, resolve_log_path, trace
from .model import Flags, TargetAction, UnlockState

RESULT_CODES: Dict[str, int] = {
    "STATUS_OK": 0,
    "KEEP_OK": 0,
    "ENABLE_OK": 0,
    "DISABLE_OK": 0,
    "FAIL_NOT_ROOT": 1,
    "FAIL_VOLUME_ID": 1,
    "FAIL_SECURE_BOOT": 1,
    "FAIL_TPM2_DEVICE": 1,
    "FAIL_ENROLL": 1,
    "FAIL_BOOT_ARGS": 1,
    "FAIL_CRYPTTAB": 1,
    "FAIL_DRACUT_CONF": 1,
    "FAIL_GRUB_CONFIG": 1,
    "FAIL_INITRAMFS": 1,
    "FAIL_REBOOT": 1,
    "FAIL_GENERIC": 1,
    "FAIL_UNHANDLED": 1,
}

CLI_START_MONO = time.perf_counter()
JSON_OUTPUT_ENABLED = False


def _result_log_path() -> Optional[str]:
    return resolve_log_path()


def _emit_result(
        kind: str,
        extra: Optional[Dict[str, Any]] = None,
        exit_code: Optional[int] = None,
) -> None:
    payload: Dict[str, Any] = {"result": kind, "ts": int(time.time())}
    if extra:
        payload.update(extra)
    payload["timing_total_ms"] = int(max(0.0, (time.perf_counter() - CLI_START_MONO) * 1000))
    log_path = _result_log_path()
    if log_path:
        payload.setdefault("log_path", log_path)
        append_jsonl(log_path, payload)
    if JSON_OUTPUT_ENABLED:
        print(json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str))
    code = RESULT_CODES.get(kind, 1) if exit_code is None else exit_code
    raise SystemExit(code)


def _fail(exc: UnlockError, extra: Optional[Dict[str, Any]] = None) -> None:
    console.fail(str(exc))
    payload = dict(extra or {})
    payload["error"] = str(exc)
    payload.update(exc.extra)
    _emit_result(exc.result, extra=payload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpm2-unlock",
        description="Enable or disable TPM2 automatic unlocking of the LUKS root volume.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--status", dest="status_only", action="store_true", help="report the current state and exit")
    mode.add_argument("--enable", dest="action", action="store_const", const=TargetAction.ENABLE)
    mode.add_argument("--disable", dest="action", action="store_const", const=TargetAction.DISABLE)
    parser.add_argument("--uuid", default=None, help="LUKS volume UUID (default: detect)")
    parser.add_argument("--tpm2-pcrs", default="7", help="PCRs to bind the TPM2 slot to (default: 7)")
    parser.add_argument("--dry-run", action="store_true", help="print commands instead of changing anything")
    parser.add_argument("--yes", dest="assume_yes", action="store_true", help="reboot without asking")
    parser.add_argument("--no-reboot", action="store_true", help="never offer to reboot")
    parser.add_argument("--json", action="store_true", help="print the result record as JSON")
    return parser


def _flags_from_args(args: argparse.Namespace) -> Flags:
    return Flags(
        action=args.action,
        status_only=args.status_only,
        dry_run=args.dry_run,
        assume_yes=args.assume_yes,
        no_reboot=args.no_reboot,
        tpm2_pcrs=args.tpm2_pcrs,
        json=args.json,
    )


def _offer_reboot(action: TargetAction, flags: Flags, input_fn=None) -> bool:
    if flags.no_reboot:
        console.warn(console.REBOOT_NOTICE[action])
        return False
    if flags.assume_yes:
        console.warn(console.REBOOT_NOTICE[action])
        confirmed = True
    else:
        confirmed = console.confirm_reboot(action, input_fn=input_fn)
    if not confirmed:
        console.info("Not rebooting; the new configuration takes effect on the next boot.")
        return False
    try:
        controller.reboot(dry_run=flags.dry_run)
    except subprocess.CalledProcessError as exc:
        console.fail(f"systemctl reboot failed: rc={exc.returncode}")
        _emit_result("FAIL_REBOOT", extra={"action": action.value, "rc": exc.returncode})
    return True


def _main_impl(argv: Optional[list[str]] = None, input_fn=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    flags = _flags_from_args(args)
    global JSON_OUTPUT_ENABLED
    JSON_OUTPUT_ENABLED = flags.json

    trace(
        "cli.args",
        action=flags.action.value if flags.action else None,
        status_only=flags.status_only,
        dry_run=flags.dry_run,
        assume_yes=flags.assume_yes,
        no_reboot=flags.no_reboot,
        tpm2_pcrs=flags.tpm2_pcrs,
    )

    try:
        preconditions.require_root()
        luks_uuid = probes.resolve_volume_uuid(args.uuid)
    except UnlockError as exc:
        _fail(exc)

    status = probes.detect(luks_uuid)
    console.show_status(luks_uuid, status)
    base = {"uuid": luks_uuid, "status_before": status.as_dict(), "state_before": status.state.value}

    if flags.status_only:
        _emit_result("STATUS_OK", extra=base)

    action = flags.action or console.prompt_target(status.state, input_fn=input_fn)
    if action is None:
        console.info("No changes made.")
        _emit_result("KEEP_OK", extra=base)
    base["action"] = action.value
    if flags.dry_run:
        console.warn("dry run: commands are printed instead of run, files are left untouched")

    try:
        if action is TargetAction.ENABLE:
            if status.state is UnlockState.DISABLED:
                base["preconditions"] = preconditions.validate_enable_preconditions()
            report = controller.apply_enable(luks_uuid, pcrs=flags.tpm2_pcrs, dry_run=flags.dry_run)
        else:
            report = controller.apply_disable(luks_uuid, dry_run=flags.dry_run)
        if not flags.dry_run:
            base["status_after"] = controller.verify(luks_uuid, report).as_dict()
        base["steps"] = report.steps
        base["warnings"] = report.warnings
        base["finalize"] = controller.finalize(dry_run=flags.dry_run)
    except UnlockError as exc:
        _fail(exc, extra=base)

    if report.warnings:
        console.warn(f"{action.value} finished with {len(report.warnings)} warning(s)")
    else:
        console.ok(f"TPM2 auto-unlock {action.value}d")
    base["rebooting"] = _offer_reboot(action, flags, input_fn=input_fn)
    _emit_result("ENABLE_OK" if action is TargetAction.ENABLE else "DISABLE_OK", extra=base)
    return 0


def main(argv: Optional[list[str]] = None, input_fn=None) -> int:
    try:
        return _main_impl(argv, input_fn=input_fn)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        console.fail("interrupted")
        _emit_result("FAIL_UNHANDLED", extra={"error": "interrupted"})
    except Exception as exc:  # noqa: BLE001
        console.fail(f"unexpected error: {exc}")
        _emit_result("FAIL_UNHANDLED", extra={"error": str(exc)})
    return 0


if __name__ == "__main__":
    sys.exit(main())
