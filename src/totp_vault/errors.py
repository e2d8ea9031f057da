"""Typed failure conditions surfaced by the directory engine.

Every error carries a human-readable ``detail`` string meant for the
presentation layer.  None of them is fatal: a later user action can
always recover.
"""


class VaultError(Exception):
    """Base class for all conditions raised by the engine."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UnlockFailed(VaultError):
    """Bad password or unreadable store; the directory stays empty."""


class BiometricError(VaultError):
    """The platform secret could not wrap or unwrap the password."""


class BiometricUnavailable(BiometricError):
    """No platform secret is available on this device."""


class BiometricDenied(BiometricError):
    """The user (or the platform) refused the biometric prompt."""


class InvalidServiceUri(VaultError):
    """The provisioning URI was rejected; the directory is unchanged."""


class MutationFailed(VaultError):
    """An update or delete was refused by the store."""


class IconFetchFailed(VaultError):
    """The icon could not be retrieved; the icon field has been cleared."""


class TokenRefreshFailed(VaultError):
    """The store could not produce the current token set."""
