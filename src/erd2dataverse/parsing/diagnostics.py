"""Side channel for recoverable parse issues."""

from typing import Iterator, List, Optional

from erd2dataverse.ir.findings import Finding


class Diagnostics:
    """
    Lazy, restartable sequence of parse warnings.

    Each iteration walks the collected findings from the start, so callers can
    consume the stream more than once without it being exhausted.
    """

    def __init__(self, findings: Optional[List[Finding]] = None):
        self._findings: List[Finding] = list(findings or [])

    def warn(self, code: str, location: str, message: str, **details) -> None:
        self._findings.append(
            Finding(
                stage="parse",
                code=code,
                severity="warning",
                location=location,
                message=message,
                details=details,
            )
        )

    def __iter__(self) -> Iterator[Finding]:
        return (finding for finding in self._findings)

    def __len__(self) -> int:
        return len(self._findings)

    def __bool__(self) -> bool:
        return bool(self._findings)

    def codes(self) -> List[str]:
        return [f.code for f in self]
