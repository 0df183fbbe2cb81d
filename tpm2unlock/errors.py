"""Fatal failure classes; each maps to one RESULT code in ``cli``."""


class UnlockError(RuntimeError):
    result = "FAIL_GENERIC"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.extra = extra


class NotRootError(UnlockError):
    result = "FAIL_NOT_ROOT"


class VolumeResolutionError(UnlockError):
    result = "FAIL_VOLUME_ID"


class SecureBootError(UnlockError):
    result = "FAIL_SECURE_BOOT"


class TpmDeviceError(UnlockError):
    result = "FAIL_TPM2_DEVICE"


class EnrollmentError(UnlockError):
    result = "FAIL_ENROLL"


class BootArgsError(UnlockError):
    result = "FAIL_BOOT_ARGS"


class CrypttabError(UnlockError):
    result = "FAIL_CRYPTTAB"


class DracutConfError(UnlockError):
    result = "FAIL_DRACUT_CONF"


class GrubConfigError(UnlockError):
    result = "FAIL_GRUB_CONFIG"


class InitramfsError(UnlockError):
    result = "FAIL_INITRAMFS"
