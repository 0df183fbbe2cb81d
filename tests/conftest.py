import subprocess

import pytest

from tpm2unlock import (
    bootargs,
    controller,
    enrollment,
    executil,
    initramfs,
    preconditions,
    probes,
)
from tpm2unlock.executil import Result

_PATCHED_MODULES = (bootargs, controller, enrollment, initramfs, preconditions, probes)


class FakeHost:
    """Stands in for grubby, systemd-cryptenroll, mokutil, blkid, dracut and friends.

    Keeps enrollment slots and kernel arguments in memory so that a mutation
    made by one call is visible to the next detection.
    """

    def __init__(self, luks_uuid="1234-ABCD"):
        self.luks_uuid = luks_uuid
        self.slots = {0: "password"}
        self.kernels = {
            "/boot/vmlinuz-6.9.4-200.fc40.x86_64": ["ro", f"rd.luks.uuid=luks-{luks_uuid}", "rhgb", "quiet"],
            "/boot/vmlinuz-6.8.11-300.fc40.x86_64": ["ro", f"rd.luks.uuid=luks-{luks_uuid}", "rhgb", "quiet"],
        }
        self.secure_boot = True
        self.tpm_present = True
        self.blkid_out = f"{luks_uuid}\n"
        self.fail: set[str] = set()
        self.calls: list[list[str]] = []

    # grubby -------------------------------------------------------------
    def grubby_info(self, which):
        blocks = []
        items = list(self.kernels.items())
        if which == "DEFAULT":
            items = items[:1]
        for idx, (kernel, args) in enumerate(items):
            blocks.append(
                f"index={idx}\nkernel=\"{kernel}\"\nargs=\"{' '.join(args)}\"\n"
                "root=\"UUID=0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0\"\n"
            )
        return "".join(blocks)

    def cryptenroll_listing(self):
        lines = ["SLOT TYPE"]
        lines += [f"   {idx} {kind}" for idx, kind in sorted(self.slots.items())]
        return "\n".join(lines) + "\n"

    def _dispatch(self, cmd):
        tool = cmd[0]
        if tool == "grubby":
            opt = cmd[1]
            if opt.startswith("--info="):
                if "grubby-info" in self.fail:
                    return 1, "", "grubby: failed"
                return 0, self.grubby_info(opt.split("=", 1)[1]), ""
            change = cmd[2]
            if change.startswith("--args="):
                if "grubby-add" in self.fail:
                    return 1, "", "grubby: failed"
                token = change.split("=", 1)[1]
                for args in self.kernels.values():
                    if token not in args:
                        args.append(token)
                return 0, "", ""
            if change.startswith("--remove-args="):
                if "grubby-remove" in self.fail:
                    return 1, "", "grubby: failed"
                token = change.split("=", 1)[1]
                for args in self.kernels.values():
                    while token in args:
                        args.remove(token)
                return 0, "", ""
        if tool == "systemd-cryptenroll":
            if cmd[1] == "--tpm2-device=list":
                if self.tpm_present:
                    return 0, "PATH        DEVICE      DRIVER\n/dev/tpmrm0 MSFT0101:00 tpm_crb\n", ""
                return 0, "", "No suitable TPM2 devices found.\n"
            if "--tpm2-device=auto" in cmd:
                if "enroll" in self.fail:
                    return 1, "", ""
                self.slots = {k: v for k, v in self.slots.items() if v != "tpm2"}
                self.slots[max(self.slots, default=-1) + 1] = "tpm2"
                return 0, "", ""
            if "--wipe-slot=tpm2" in cmd:
                if "wipe" in self.fail:
                    return 1, "", ""
                self.slots = {k: v for k, v in self.slots.items() if v != "tpm2"}
                return 0, "", ""
            if "list" in self.fail:
                return 1, "", "Failed to open device"
            return 0, self.cryptenroll_listing(), ""
        if tool == "mokutil":
            return 0, "SecureBoot enabled\n" if self.secure_boot else "SecureBoot disabled\n", ""
        if tool == "blkid":
            return 0, self.blkid_out, ""
        if tool in ("grub2-mkconfig", "dracut", "systemctl"):
            return (1, "", f"{tool}: failed") if tool in self.fail else (0, "", "")
        return 127, "", f"unexpected command {cmd}"

    def run(self, cmd, check=True, dry_run=False, timeout=None, env=None, interactive=False):  # noqa: ARG002
        cmd = list(cmd)
        self.calls.append(cmd)
        if dry_run:
            return Result(0, "DRY-RUN: " + " ".join(cmd), "", 0.0)
        rc, out, err = self._dispatch(cmd)
        if check and rc != 0:
            raise subprocess.CalledProcessError(rc, cmd, out, err)
        return Result(rc, out, err, 0.0)

    def mutating_calls(self):
        return [
            cmd for cmd in self.calls
            if not (cmd[0] == "grubby" and cmd[1].startswith("--info="))
            and not (cmd[0] == "systemd-cryptenroll" and len(cmd) == 2)
            and cmd[0] not in ("mokutil", "blkid")
        ]


@pytest.fixture
def sysroot(tmp_path, monkeypatch):
    root = tmp_path / "root"
    (root / "etc").mkdir(parents=True)
    monkeypatch.setenv("TPM2UNLOCK_SYSROOT", str(root))
    monkeypatch.setattr(executil, "LOG_DIRS", [str(tmp_path / "logs")])
    monkeypatch.setattr(executil, "LOG_PATH", None)
    return root


@pytest.fixture
def host(sysroot, monkeypatch):
    fake = FakeHost()
    for module in _PATCHED_MODULES:
        monkeypatch.setattr(module, "run", fake.run)
    return fake
