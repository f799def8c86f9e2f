import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pycell.cell_cancel import CancellationController
from pycell.cell_compiler import BROWSER_GLOBALS, PythonCompiler
from pycell.cell_config import EngineConfig
from pycell.cell_datatypes import CompilationResult, Diagnostic, ExecutionOutcome, Interrupted
from pycell.cell_declarations import DeclarationState
from pycell.cell_metadata import get_code_metadata
from pycell.cell_modules import ModuleCache
from pycell.cell_namespace import ExportNamespace
from pycell.cell_output import ConsoleSink, OutputSink
from pycell.cell_realm import Realm

logger = logging.getLogger(__name__)


# ===================================================================
# 1. Collaborators
# ===================================================================

@dataclass
class CompilerSet:
    """The compilers for locally executed cells and for browser cells."""
    local: Any
    browser: Any

    def for_mode(self, mode: str):
        return self.browser if mode == "browser" else self.local

    def close(self) -> None:
        self.local.close()
        self.browser.close()


def create_compilers(config: EngineConfig) -> CompilerSet:
    common = dict(root_dir=config.root_dir, extension=config.extension, self_name=config.self_name)
    return CompilerSet(
        local=PythonCompiler(**common),
        browser=PythonCompiler(extra_globals=BROWSER_GLOBALS, **common),
    )


# ===================================================================
# 2. The executor
# ===================================================================

async def _contain(body) -> Optional[BaseException]:
    """Await a cell body, returning what it raised instead of raising it.

    A task that raises SystemExit re-raises it into the event loop, so the
    body must never let it reach the task. KeyboardInterrupt and
    cancellation still propagate.
    """
    try:
        await body
    except (KeyboardInterrupt, asyncio.CancelledError):
        raise
    except BaseException as e:
        return e
    return None


class Executor:
    """Runs cells one after another against a single persistent state.

    Callers must not start an `execute` while another is in flight, nor
    `reset` during one.
    """

    def __init__(self, compilers: CompilerSet, sink: Optional[OutputSink] = None,
                 config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.compilers = compilers
        self.sink = sink or ConsoleSink()
        self.namespace = ExportNamespace()
        self.declarations = DeclarationState()
        self.modules = ModuleCache(
            root_dir=self.config.root_dir,
            extension=self.config.extension,
            self_name=self.config.self_name,
        )
        self.cancellation = CancellationController(self.config.interrupt_message)
        self.realm = Realm()
        self._require = self.modules.loader(self.config.root_dir)

    @property
    def locals(self) -> Dict[str, Any]:
        """A snapshot of the current bindings."""
        return self.namespace.snapshot()

    def _report_diagnostics(self, diagnostics: List[Diagnostic]) -> None:
        for diag in diagnostics:
            self.sink.write_error(self.config.format_diagnostic(diag))

    def _fail(self, status: str, error: BaseException) -> ExecutionOutcome:
        logger.debug("cell %s: %r", status, error)
        self.sink.write_error(error)
        return ExecutionOutcome(status, error)

    async def execute(self, src: str) -> bool:
        """Compile and run `src`. Returns whether it ran successfully."""
        outcome = await self.run(src)
        return outcome.ok

    async def run(self, src: str) -> ExecutionOutcome:
        """Compile and run `src`, describing what happened.

        Every failure is reported to the sink and folded into the outcome;
        nothing raised by the cell escapes.
        """
        try:
            meta = get_code_metadata(src)
            if meta.module:
                compiler = self.compilers.for_mode(meta.mode)
                self._report_diagnostics(compiler.register_module(meta.module, src, meta))
                # Modules are registered even when they have errors.
                return ExecutionOutcome('success')
            if meta.mode == "browser":
                # Browser cells are not executed here.
                return ExecutionOutcome('success')

            converted = self.compilers.local.compile(self.declarations.current(), src)
            if converted.side_modules:
                self.modules.update(converted.side_modules)
            if converted.diagnostics:
                self._report_diagnostics(converted.diagnostics)
                return ExecutionOutcome('diagnostic', list(converted.diagnostics))
            if not converted.body:
                self.declarations.merge(converted.declarations)
                return ExecutionOutcome('success')
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            return self._fail('fault', e)

        return await self._run_body(converted)

    async def _run_body(self, converted: CompilationResult) -> ExecutionOutcome:
        # Declarations are static and already validated, so they are kept
        # whatever happens at runtime.
        self.declarations.merge(converted.declarations)
        try:
            ret = self.realm.run(converted.body, self.namespace, self._require,
                                 is_async=converted.has_top_level_await)
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            # SystemExit and a bare CancelledError are cell faults too.
            return self._fail('fault', e)

        if converted.has_top_level_await:
            try:
                error = await self.cancellation.race(_contain(ret))
            except Exception as e:
                status = 'cancelled' if isinstance(e, Interrupted) else 'rejected'
                return self._fail(status, e)
            if error is not None:
                return self._fail('rejected', error)

        name = converted.last_expression_binding
        if name and name in self.namespace:
            value = self.namespace.get(name)
            self.namespace.remove(name)
            if value is not None:
                self.sink.write_result(value)
        return ExecutionOutcome('success')

    def inspect(self, src: str, position: int):
        compiler = self.compilers.for_mode(get_code_metadata(src).mode)
        return compiler.inspect(self.declarations.current(), src, position)

    def complete(self, src: str, position: int):
        compiler = self.compilers.for_mode(get_code_metadata(src).mode)
        return compiler.complete(self.declarations.current(), src, position)

    def reset(self) -> None:
        self.declarations.clear()
        self.namespace.clear()

    def interrupt(self) -> None:
        """Cancel the pending suspension of the running cell, if any."""
        self.cancellation.interrupt()

    def close(self) -> None:
        self.compilers.close()


def create_executor(root_dir: Optional[str] = None, sink: Optional[OutputSink] = None,
                    config: Optional[EngineConfig] = None) -> Executor:
    """Build an executor with the default Python compilers."""
    if config is None:
        config = EngineConfig(root_dir=root_dir)
    return Executor(create_compilers(config), sink=sink, config=config)
