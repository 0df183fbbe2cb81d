"""Toggle TPM2-backed automatic unlocking of a LUKS root volume."""
