import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TextIO

from pycell.cell_printer import Printer


class OutputSink(ABC):
    """Where an executor sends displayed values and reported errors.

    The exact sequence of calls is observable: one call per displayed value,
    diagnostic, or error, in the order they happen.
    """

    @abstractmethod
    def write_result(self, value: Any) -> None: raise NotImplementedError

    @abstractmethod
    def write_error(self, value: Any) -> None: raise NotImplementedError


class ConsoleSink(OutputSink):
    """Prints results to stdout and errors to stderr."""

    def __init__(self, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None,
                 printer: Optional[Printer] = None):
        self._stdout = stdout
        self._stderr = stderr
        self.printer = printer or Printer()

    def write_result(self, value: Any) -> None:
        print(self.printer.pformat(value), file=self._stdout or sys.stdout)

    def write_error(self, value: Any) -> None:
        # Diagnostics arrive already formatted.
        text = value if isinstance(value, str) else self.printer.pformat(value)
        print(text, file=self._stderr or sys.stderr)


class SideEffectSink(OutputSink):
    """Records every write as a side-effect event instead of printing it."""

    def __init__(self):
        self.side_effects: List[Dict[str, Any]] = []

    def write_result(self, value: Any) -> None:
        self.side_effects.append({'topics': ['stdout'], 'value': value})

    def write_error(self, value: Any) -> None:
        self.side_effects.append({'topics': ['stderr'], 'value': value})

    @property
    def results(self) -> List[Any]:
        return [e['value'] for e in self.side_effects if e['topics'] == ['stdout']]

    @property
    def errors(self) -> List[Any]:
        return [e['value'] for e in self.side_effects if e['topics'] == ['stderr']]

    def clear(self) -> None:
        self.side_effects.clear()
