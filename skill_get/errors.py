"""Custom exception classes for skill-get."""

from typing import Optional


class SkillGetError(Exception):
    """Base class for all custom exceptions in skill-get."""

    pass


class ConfigurationError(SkillGetError):
    """Raised when loading or validating the configuration file fails."""

    pass


class StateFileError(SkillGetError):
    """Raised when the per-user state file cannot be written."""

    pass


# ── Registry ─────────────────────────────────────────────────────────────


class RegistryError(SkillGetError):
    """
    Raised when the registry rejects a request or returns a body
    the client cannot use.

    ``code`` carries the machine-readable ``error`` field of the
    response (``request_failed`` when the body has none).
    """

    def __init__(
        self,
        message: str,
        code: str = "request_failed",
        status: int = 0,
    ):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"[{code}] {message}")


class RegistryNetworkError(RegistryError):
    """Raised when the registry cannot be reached at all."""

    def __init__(self, message: str, orig_exc: Optional[Exception] = None):
        self.orig_exc = orig_exc
        super().__init__(message, code="network_error")


class SkillNotFoundError(RegistryError):
    """Raised when the registry has no such skill or version."""

    def __init__(self, message: str, status: int = 404):
        super().__init__(message, code="not_found", status=status)


class ArtifactUnavailableError(RegistryError):
    """Raised when an artifact download returns a non-2xx status."""

    def __init__(self, reference: str, status: int = 0):
        self.reference = reference
        super().__init__(
            f"Artifact unavailable: {reference} (status {status})",
            code="artifact_unavailable",
            status=status,
        )


# ── Filesystem ───────────────────────────────────────────────────────────


class MaterializeError(SkillGetError):
    """
    Raised when writing or extracting skill files fails.
    """

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.target = target
        self.orig_exc = orig_exc

        full_msg = message
        if target:
            full_msg += f" (target: {target})"
        if orig_exc:
            full_msg += f": {orig_exc}"
        super().__init__(full_msg)


# ── Device authentication ────────────────────────────────────────────────


class AuthError(SkillGetError):
    """Base class for device-flow authentication failures."""

    pass


class AuthExpiredError(AuthError):
    """Raised when the device code expired before the user approved it."""

    pass


class AuthDeniedError(AuthError):
    """Raised when the user denied the device authorization request."""

    pass


class AuthTimeoutError(AuthError):
    """Raised when polling ran past the device code lifetime."""

    pass


# ── Bundles ──────────────────────────────────────────────────────────────


class BundleError(SkillGetError):
    """Raised when a local skill bundle cannot be read or packed."""

    pass


class InvalidSkillNameError(SkillGetError):
    """Raised when a skill name cannot be used as a directory name."""

    def __init__(self, name: str):
        super().__init__(f"Invalid skill name '{name}': must be a single path component")
        self.name = name
