"""Exception taxonomy for the diagram-to-schema pipeline."""

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from erd2dataverse.ir.findings import Finding


class Erd2DataverseError(Exception):
    """Base exception for all erd2dataverse errors."""

    pass


class ParseError(Erd2DataverseError):
    """Raised when diagram text is syntactically malformed."""

    def __init__(self, message: str, line: int, column: int, token: Optional[str] = None):
        self.line = line
        self.column = column
        self.token = token
        self.reason = message
        near = f" near '{token}'" if token else ""
        super().__init__(f"line {line}, column {column}{near}: {message}")


class ValidationError(Erd2DataverseError):
    """Raised when a graph or plan with blocking findings is used where it must be valid."""

    def __init__(self, findings: List["Finding"]):
        self.findings = findings
        errors = [f.message for f in findings if f.severity == "error"]
        super().__init__(f"Validation failed with {len(errors)} error(s): {errors}")


class GenerationError(Erd2DataverseError):
    """Raised when a single plan object cannot be generated (naming or reserved-word conflict)."""

    def __init__(self, message: str, location: str, code: str = "GENERATION_FAILED"):
        self.location = location
        self.code = code
        super().__init__(f"{location}: {message}")


class AuthError(Erd2DataverseError):
    """Raised when a credential cannot be acquired or refreshed."""

    pass


class RemoteError(Erd2DataverseError):
    """Raised when a call to the metadata API fails."""

    def __init__(self, status_code: int, message: str, url: str = ""):
        self.status_code = status_code
        self.url = url
        self.reason = message
        where = f" ({url})" if url else ""
        super().__init__(f"HTTP {status_code}{where}: {message}")


class TransientRemoteError(RemoteError):
    """Rate limit, unavailable service, gateway or timeout failure; safe to retry."""

    def __init__(
        self,
        status_code: int,
        message: str,
        url: str = "",
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(status_code, message, url)


class PermanentRemoteError(RemoteError):
    """Rejected payload, authorization denial or conflicting object; never retried."""

    pass
