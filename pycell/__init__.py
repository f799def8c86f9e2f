"""pycell: an interactive execution engine for notebook-style Python cells."""

from pycell.cell_config import EngineConfig, load_config
from pycell.cell_datatypes import (
    CellError, CodeMetadata, CompilationResult, Diagnostic, ExecutionOutcome, Interrupted, SideModule,
)
from pycell.cell_executor import CompilerSet, Executor, create_compilers, create_executor
from pycell.cell_metadata import get_code_metadata
from pycell.cell_namespace import ExportNamespace
from pycell.cell_output import ConsoleSink, OutputSink, SideEffectSink
from pycell.cell_printer import Printer

__all__ = [
    "CellError", "CodeMetadata", "CompilationResult", "CompilerSet", "ConsoleSink", "Diagnostic",
    "EngineConfig", "ExecutionOutcome", "Executor", "ExportNamespace", "Interrupted", "OutputSink",
    "Printer", "SideEffectSink", "SideModule", "create_compilers", "create_executor",
    "get_code_metadata", "load_config",
]
