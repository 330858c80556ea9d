"""erd2dataverse: Mermaid ER diagrams to Dataverse schemas."""

__version__ = "0.1.0"

from erd2dataverse.errors import (
    AuthError,
    Erd2DataverseError,
    GenerationError,
    ParseError,
    PermanentRemoteError,
    RemoteError,
    TransientRemoteError,
    ValidationError,
)

__all__ = [
    "__version__",
    "AuthError",
    "Erd2DataverseError",
    "GenerationError",
    "ParseError",
    "PermanentRemoteError",
    "RemoteError",
    "TransientRemoteError",
    "ValidationError",
]
