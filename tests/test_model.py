import pytest

from tpm2unlock import console
from tpm2unlock.model import ApplyReport, StatusReport, TargetAction, UnlockState


@pytest.mark.parametrize(
    "signals, state, consistent",
    [
        ((False, False, False), UnlockState.DISABLED, True),
        ((True, True, True), UnlockState.ENABLED, True),
        ((True, False, False), UnlockState.ENABLED, False),
        ((False, False, True), UnlockState.ENABLED, False),
    ],
)
def test_status_report(signals, state, consistent):
    report = StatusReport(*signals)
    assert report.state is state
    assert report.consistent is consistent


def test_positive_signals_in_order():
    assert StatusReport(enrolled=True, crypttab=True).positive() == ["enrolled", "crypttab"]


def test_apply_report_records_steps():
    report = ApplyReport(TargetAction.ENABLE)
    report.step("enroll", rc=0)
    report.warn("something odd")
    assert report.steps == [{"step": "enroll", "rc": 0}]
    assert report.warnings == ["something odd"]


def test_show_status_flags_partial_state(capsys, monkeypatch):
    monkeypatch.delenv("NO_COLOR", raising=False)
    console.show_status("1234-ABCD", StatusReport(boot_args=True))
    out = capsys.readouterr()
    assert "UUID=1234-ABCD" in out.out
    assert "partially enabled (boot_args)" in out.err
    # captured streams are not terminals
    assert "\033[" not in out.out + out.err


def test_show_status_consistent(capsys):
    console.show_status("1234-ABCD", StatusReport())
    out = capsys.readouterr()
    assert "TPM2 auto-unlock is disabled" in out.out
    assert out.err == ""
