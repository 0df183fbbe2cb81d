"""Operator-facing terminal output and the two interactive questions."""

from __future__ import annotations

import os
import sys
from typing import Callable, Optional

from .model import StatusReport, TargetAction, UnlockState

GREEN = "\033[0;32m"; YELLOW = "\033[0;33m"; RED = "\033[0;31m"; CLR = "\033[0m"

InputFn = Callable[[str], str]


def _color_enabled(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _emit(tag: str, color: str, msg: str, stream=None) -> None:
    stream = stream or sys.stdout
    if color and _color_enabled(stream):
        tag = f"{color}{tag}{CLR}"
    print(f"{tag} {msg}", file=stream, flush=True)


def info(msg: str) -> None:
    _emit("[INFO]", "", msg)


def ok(msg: str) -> None:
    _emit("[OK]", GREEN, msg)


def warn(msg: str) -> None:
    _emit("[WARN]", YELLOW, msg, sys.stderr)


def fail(msg: str) -> None:
    _emit("[FAIL]", RED, msg, sys.stderr)


def show_status(luks_uuid: str, report: StatusReport) -> None:
    info(f"LUKS volume UUID={luks_uuid}")
    labels = {
        "enrolled": "TPM2 key slot enrolled",
        "boot_args": "kernel arguments carry tpm2-device",
        "crypttab": "crypttab carries tpm2-device",
    }
    for key, value in report.as_dict().items():
        (ok if value else info)(f"{labels[key]}: {'yes' if value else 'no'}")
    if report.state is UnlockState.ENABLED and not report.consistent:
        warn("TPM2 auto-unlock is partially enabled (" + ", ".join(report.positive()) + ")")
    else:
        info(f"TPM2 auto-unlock is {report.state.value}")


_CHOICES = {
    UnlockState.DISABLED: (TargetAction.ENABLE, "Enable TPM2 auto-unlock", "Keep disabled and exit"),
    UnlockState.ENABLED: (TargetAction.DISABLE, "Disable TPM2 auto-unlock", "Keep enabled and exit"),
}


def prompt_target(state: UnlockState, input_fn: Optional[InputFn] = None) -> Optional[TargetAction]:
    """Offer the toggle or exit; ``None`` means leave everything as it is."""

    ask = input_fn or input
    action, toggle_text, keep_text = _CHOICES[state]
    print(f"  1) {toggle_text}")
    print(f"  2) {keep_text}")
    while True:
        try:
            answer = ask("Choose [1/2]: ").strip()
        except EOFError:
            return None
        if answer == "1":
            return action
        if answer == "2":
            return None
        warn(f"invalid choice {answer!r}; enter 1 or 2")


REBOOT_NOTICE = {
    TargetAction.ENABLE: "On the next boot you will be asked for the LUKS passphrase once; "
                         "after that the TPM2 unlocks the volume automatically.",
    TargetAction.DISABLE: "On the next boot expect to be asked for the LUKS passphrase twice.",
}


def confirm_reboot(action: TargetAction, input_fn: Optional[InputFn] = None) -> bool:
    ask = input_fn or input
    warn(REBOOT_NOTICE[action])
    try:
        answer = ask("Reboot now? [y/N]: ").strip().lower()
    except EOFError:
        return False
    return answer in ("y", "yes")
