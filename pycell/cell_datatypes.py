"""
Defines the core data types shared by the pycell engine and its collaborators.

This module provides the records that flow between the classifier, the
compiler, the module cache and the executor, plus the engine's exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional


class CellError(Exception):
    """Base class for errors raised by the pycell runtime itself."""


class Interrupted(CellError):
    """Raised into a pending execution when the cancellation signal fires."""

    def __eq__(self, other):
        # Compared by type and message so sinks can be checked in tests.
        if isinstance(other, Interrupted):
            return self.args == other.args
        return NotImplemented

    def __hash__(self):
        return hash((type(self), self.args))


# =================================================================
# Compiler records
# =================================================================

@dataclass
class Diagnostic:
    """A compile-time problem. `line` and `character` are 0-based."""
    message: str
    line: int = 0
    character: int = 0
    file_name: str = ""

    def template_context(self) -> Dict[str, Any]:
        return {
            "file_prefix": f"{self.file_name} " if self.file_name else "",
            "file_name": self.file_name,
            "line": self.line + 1,
            "col": self.character + 1,
            "message": self.message,
        }


@dataclass
class SideModule:
    """Source text for a module generated or resolved while compiling a cell."""
    path: str
    source: str


@dataclass
class CompilationResult:
    body: str = ""
    declarations: str = ""
    diagnostics: List[Diagnostic] = field(default_factory=list)
    side_modules: List[SideModule] = field(default_factory=list)
    has_top_level_await: bool = False
    last_expression_binding: Optional[str] = None


@dataclass
class CodeMetadata:
    """What the classifier found in a cell's leading directive comments."""
    mode: Literal['local', 'browser'] = 'local'
    module: Optional[str] = None
    directives: List[str] = field(default_factory=list)


# =================================================================
# Execution outcome
# =================================================================

Status = Literal['success', 'diagnostic', 'fault', 'rejected', 'cancelled']


@dataclass
class ExecutionOutcome:
    """The structured result of one execution cycle."""
    status: Status
    detail: Any = None

    @property
    def ok(self) -> bool:
        return self.status == 'success'
