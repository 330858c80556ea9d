"""Deterministic technical naming for publishers, solutions, tables and columns."""

import re
from typing import Optional
from pydantic import BaseModel, field_validator

from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.errors import GenerationError

_SEPARATORS = re.compile(r"[_\-]+")
_NON_ALNUM = re.compile(r"[^0-9A-Za-z\s]")
_PREFIX = re.compile(r"^[a-z][a-z0-9]{1,7}$")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

PRIMARY_NAME_FIELD = "name"


class NamingConfig(BaseModel):
    """Naming inputs of the generator: publisher prefix and display names."""

    publisher_prefix: str = "mmd"
    publisher_name: str = "Mermaid Publisher"
    solution_name: str = "Mermaid Solution"
    publisher_unique_name: Optional[str] = None
    solution_unique_name: Optional[str] = None
    language_code: int = 1033

    @field_validator("publisher_prefix")
    @classmethod
    def check_prefix(cls, v: str) -> str:
        v = v.strip().lower()
        if not _PREFIX.match(v) or v.startswith("mscrm"):
            raise ValueError(
                f"publisher prefix '{v}' must be 2-8 lowercase letters or digits, "
                "start with a letter and not start with 'mscrm'"
            )
        return v

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "NamingConfig":
        settings = settings or get_settings()
        return cls(
            publisher_prefix=settings.publisher_prefix,
            publisher_name=settings.publisher_name,
            solution_name=settings.solution_name,
            language_code=settings.language_code,
        )

    @property
    def resolved_publisher_unique_name(self) -> str:
        return self.publisher_unique_name or technical_name(self.publisher_prefix, self.publisher_name)

    @property
    def resolved_solution_unique_name(self) -> str:
        return self.solution_unique_name or technical_name(self.publisher_prefix, self.solution_name)


def pascal_case(text: str) -> str:
    """
    Collapse a display name into a PascalCase identifier.

    Underscores and hyphens act as word breaks, every other non-alphanumeric
    character is dropped, and each word keeps its tail as written, so
    ``pascal_case(pascal_case(x)) == pascal_case(x)``.

    Args:
        text: Display name or diagram identifier

    Returns:
        PascalCase identifier (may be empty if nothing alphanumeric remains)
    """
    spaced = _SEPARATORS.sub(" ", text)
    cleaned = _NON_ALNUM.sub("", spaced)
    return "".join(word[0].upper() + word[1:] for word in cleaned.split())


def technical_name(prefix: str, display_name: str) -> str:
    """Schema name ``{prefix}_{PascalCase}``; raises GenerationError when empty."""
    body = pascal_case(display_name)
    if not body:
        raise GenerationError(
            f"'{display_name}' has no alphanumeric characters to build a name from",
            location=display_name,
            code="EMPTY_NAME",
        )
    return f"{prefix}_{body}"


def logical_name(prefix: str, display_name: str) -> str:
    """Lower-cased technical name used as the logical name and existence key."""
    return technical_name(prefix, display_name).lower()


def humanize(identifier: str) -> str:
    """Readable label for an identifier: ``order_item`` / ``orderItem`` -> ``Order Item``."""
    spaced = _CAMEL_BOUNDARY.sub(" ", _SEPARATORS.sub(" ", identifier))
    return " ".join(w[0].upper() + w[1:] for w in spaced.split())


def relationship_schema_name(prefix: str, referenced: str, referencing: str, label: Optional[str] = None) -> str:
    """``{prefix}_{Referenced}_{Referencing}`` with an optional label suffix."""
    name = f"{prefix}_{pascal_case(referenced)}_{pascal_case(referencing)}"
    if label:
        suffix = pascal_case(label)
        if suffix:
            name = f"{name}_{suffix}"
    return name


def default_lookup_name(prefix: str, referenced: str, referencing: str) -> str:
    """Lookup column schema name when no foreign-key field names it."""
    if referenced == referencing:
        return f"{prefix}_Parent{pascal_case(referenced)}Id"
    return f"{prefix}_{pascal_case(referenced)}Id"
