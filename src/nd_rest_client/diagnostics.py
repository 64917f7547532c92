"""Diagnostics sink that REST call failures are reported into."""

from dataclasses import dataclass, field
from typing import Protocol


class DiagnosticsSink(Protocol):
    """Anything that accepts error diagnostics (e.g. a framework response)."""

    def add_error(self, summary: str, detail: str) -> None: ...


@dataclass(frozen=True)
class Diagnostic:
    """A single reported error."""

    summary: str
    detail: str


@dataclass
class Diagnostics:
    """List-backed diagnostics collector."""

    errors: list[Diagnostic] = field(default_factory=list)

    def add_error(self, summary: str, detail: str) -> None:
        self.errors.append(Diagnostic(summary=summary, detail=detail))

    def has_error(self) -> bool:
        return bool(self.errors)
