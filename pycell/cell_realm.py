"""
The execution realm: one long-lived globals dict in which every cell body runs.

A cell body never runs at the realm's top level. It is wrapped as a function
taking the export namespace and the module loader, defined in the realm and
invoked immediately, so cell temporaries stay local to the call while
definitions and explicit `global` state persist.
"""

import ast
import builtins
import itertools
import linecache
from typing import Any, Dict

CELL_FUNCTION = "__cell__"
EXPORTS_PARAM = "__exports__"
REQUIRE_PARAM = "__require__"

_SYNC_WRAPPER = f"def {CELL_FUNCTION}({EXPORTS_PARAM}, {REQUIRE_PARAM}):\n    pass\n"
_ASYNC_WRAPPER = f"async def {CELL_FUNCTION}({EXPORTS_PARAM}, {REQUIRE_PARAM}):\n    pass\n"


def remember_source(filename: str, source: str) -> None:
    """Make generated source visible to tracebacks under `filename`."""
    lines = source.splitlines(True)
    # An mtime of None keeps linecache.checkcache from evicting the entry.
    linecache.cache[filename] = (len(source), None, lines, filename)


class Realm:
    """The single persistent context that compiled cell bodies run in."""

    def __init__(self, name: str = "__cell__"):
        self.globals: Dict[str, Any] = {"__name__": name, "__builtins__": builtins}
        self._counter = itertools.count(1)

    def wrap(self, body: str, is_async: bool, filename: str) -> ast.Module:
        tree = ast.parse(body, filename=filename, mode="exec")
        wrapper = ast.parse(_ASYNC_WRAPPER if is_async else _SYNC_WRAPPER)
        fn = wrapper.body[0]
        fn.body = tree.body or [ast.Pass()]
        return ast.fix_missing_locations(wrapper)

    def run(self, body: str, exports, require, is_async: bool = False):
        """Invoke `body` as a fresh cell function.

        Returns the function's result, which is a coroutine when `is_async`
        is set. Exceptions raised while the body runs propagate.
        """
        filename = f"<cell-{next(self._counter)}>"
        remember_source(filename, body)
        code = compile(self.wrap(body, is_async, filename), filename, "exec")
        exec(code, self.globals)
        fn = self.globals.pop(CELL_FUNCTION)
        return fn(exports, require)
