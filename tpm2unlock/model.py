from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class UnlockState(Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


class TargetAction(Enum):
    ENABLE = "enable"
    DISABLE = "disable"


@dataclass(frozen=True)
class StatusReport:
    """The three independent TPM2 signals for one volume."""

    enrolled: bool = False
    boot_args: bool = False
    crypttab: bool = False

    @property
    def state(self) -> UnlockState:
        if self.enrolled or self.boot_args or self.crypttab:
            return UnlockState.ENABLED
        return UnlockState.DISABLED

    @property
    def consistent(self) -> bool:
        return self.enrolled == self.boot_args == self.crypttab

    def positive(self) -> list[str]:
        return [name for name, value in self.as_dict().items() if value]

    def as_dict(self) -> dict:
        return {"enrolled": self.enrolled, "boot_args": self.boot_args, "crypttab": self.crypttab}


@dataclass
class Flags:
    action: Optional[TargetAction] = None
    status_only: bool = False
    dry_run: bool = False
    assume_yes: bool = False
    no_reboot: bool = False
    tpm2_pcrs: str = "7"
    json: bool = False


@dataclass
class ApplyReport:
    action: TargetAction
    steps: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def step(self, name: str, **fields) -> None:
        entry = {"step": name}
        entry.update(fields)
        self.steps.append(entry)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
