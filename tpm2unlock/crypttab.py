"""Read and rewrite the disk-unlock mapping table (/etc/crypttab)."""
import os

from . import paths
from .executil import trace

TPM2_DEVICE = "/dev/tpmrm0"
TPM2_OPTION = f"tpm2-device={TPM2_DEVICE}"
TPM2_MARKER = "tpm2-device="


def tpm2_line(luks_uuid: str) -> str:
    return f"luks-{luks_uuid} UUID={luks_uuid} none {TPM2_OPTION}"


def _printable(line: str) -> str:
    # undecodable bytes survive a rewrite but are shown as U+FFFD
    return line.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def _is_entry(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def has_tpm2_option(text: str) -> bool:
    """True when any crypttab entry carries a ``tpm2-device=`` option."""

    for line in text.splitlines():
        if not _is_entry(line):
            continue
        if TPM2_MARKER in line:
            return True
    return False


def read_text(path: str | None = None) -> str:
    ct = path or paths.crypttab_path()
    try:
        with open(ct, "r", encoding="utf-8", errors="surrogateescape") as fh:
            return fh.read()
    except FileNotFoundError:
        return ""


def _write(path: str, data: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", errors="surrogateescape") as f:
        f.write(data)
        try:
            f.flush()
            os.fsync(f.fileno())
        except OSError:
            pass


def write_tpm2_crypttab(luks_uuid: str, path: str | None = None, dry_run: bool = False) -> dict:
    """Replace the whole mapping table with the single TPM2 line for ``luks_uuid``.

    Returns the entries that were dropped so the caller can report them.
    """

    ct = path or paths.crypttab_path()
    previous = read_text(ct)
    desired = tpm2_line(luks_uuid)
    discarded = [
        _printable(line) for line in previous.splitlines()
        if _is_entry(line) and line.strip() != desired
    ]
    if not dry_run:
        _write(ct, desired + "\n")
    trace("crypttab.write", path=ct, line=desired, discarded=discarded, dry_run=dry_run)
    return {"path": ct, "line": desired, "discarded": discarded}


def remove_tpm2_lines(path: str | None = None, dry_run: bool = False) -> dict:
    """Delete only the lines carrying the TPM2 option; keep the rest verbatim."""

    ct = path or paths.crypttab_path()
    if not os.path.isfile(ct):
        return {"path": ct, "exists": False, "removed": []}
    with open(ct, "r", encoding="utf-8", errors="surrogateescape") as fh:
        original = fh.read()
    kept: list[str] = []
    removed: list[str] = []
    for line in original.splitlines(keepends=True):
        if _is_entry(line) and TPM2_MARKER in line:
            removed.append(_printable(line.rstrip("\n")))
        else:
            kept.append(line)
    if removed and not dry_run:
        _write(ct, "".join(kept))
    trace("crypttab.remove", path=ct, removed=removed, dry_run=dry_run)
    return {"path": ct, "exists": True, "removed": removed}
