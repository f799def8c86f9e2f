"""
The default compiler collaborator: turns Python cell text into a body the
executor can run.

A cell is compiled against the declarations of every earlier cell. The
resulting body:

  - reads earlier bindings it mentions from `__exports__`,
  - publishes every name it binds at top level back through
    `__exports__.assign` right after the statement that binds it,
  - routes every import through `__require__`,
  - stores its trailing value under `LAST_EXPRESSION`.

The trailing value is a final expression statement, or the target of a final
plain (`x = 3`) or augmented (`x += 1`) assignment to a single name, so such
cells display the value they assigned. An annotated assignment (`x: int = 3`)
only declares and displays nothing.

Imported files and registered modules are converted the same way and handed
back as side modules whenever their converted text changes.
"""

import ast
import builtins
import keyword
import logging
import os
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pycell.cell_datatypes import CodeMetadata, CompilationResult, Diagnostic, SideModule
from pycell.cell_modules import DEFAULT_EXTENSION, candidate_paths, join_specifier, specifier_prefixes
from pycell.cell_realm import EXPORTS_PARAM, REQUIRE_PARAM

logger = logging.getLogger(__name__)

LAST_EXPRESSION = "__cell_last__"
BUILTIN_NAMES = frozenset(dir(builtins))
BROWSER_GLOBALS = ("js", "pyodide", "document", "window")

_DEFS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)
_NEW_SCOPES = _DEFS + (ast.Lambda, ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
_COMPOUND = tuple(
    getattr(ast, name)
    for name in ("If", "For", "AsyncFor", "While", "With", "AsyncWith", "Try", "TryStar", "Match")
    if hasattr(ast, name)
)


def _stmt(src: str) -> ast.stmt:
    return ast.parse(src).body[0]


def _syntax_diagnostic(e: SyntaxError, file_name: str = "") -> Diagnostic:
    return Diagnostic(
        message=e.msg or "invalid syntax",
        line=max((e.lineno or 1) - 1, 0),
        character=max((e.offset or 1) - 1, 0),
        file_name=file_name,
    )


def _alias_binding(alias: ast.alias, is_from: bool) -> str:
    if alias.asname:
        return alias.asname
    return alias.name if is_from else alias.name.split(".")[0]


# ===================================================================
# 1. Name analysis
# ===================================================================

def _top_level_bindings(stmt: ast.stmt) -> List[str]:
    """Names `stmt` binds in the scope it runs in, in source order."""
    names: List[str] = []

    def add(name):
        if name and name not in names:
            names.append(name)

    def visit(node):
        if isinstance(node, _DEFS):
            add(node.name)
            return
        if isinstance(node, _NEW_SCOPES):
            return
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            add(node.id)
        elif isinstance(node, ast.ExceptHandler):
            add(node.name)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            if isinstance(node, ast.ImportFrom) and node.module == "__future__":
                return
            for alias in node.names:
                if alias.name != "*":
                    add(_alias_binding(alias, isinstance(node, ast.ImportFrom)))
        elif hasattr(ast, "MatchAs") and isinstance(node, (ast.MatchAs, ast.MatchStar)):
            add(node.name)
        elif hasattr(ast, "MatchMapping") and isinstance(node, ast.MatchMapping):
            add(node.rest)
        for child in ast.iter_child_nodes(node):
            visit(child)

    visit(stmt)
    return names


def _deleted_names(stmt: ast.stmt) -> List[str]:
    if not isinstance(stmt, ast.Delete):
        return []
    return [t.id for t in stmt.targets if isinstance(t, ast.Name)]


def _bound_anywhere(tree: ast.AST) -> set:
    bound = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and not isinstance(node.ctx, ast.Load):
            bound.add(node.id)
        elif isinstance(node, _DEFS):
            bound.add(node.name)
        elif isinstance(node, ast.arg):
            bound.add(node.arg)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            bound.update(_alias_binding(a, isinstance(node, ast.ImportFrom)) for a in node.names)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            bound.add(node.name)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            bound.update(node.names)
        elif hasattr(ast, "MatchAs") and isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
            bound.add(node.name)
        elif hasattr(ast, "MatchMapping") and isinstance(node, ast.MatchMapping) and node.rest:
            bound.add(node.rest)
    return bound


def _loaded_names(tree: ast.AST) -> List[ast.Name]:
    loads = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            loads.append(node)
        elif isinstance(node, ast.AugAssign) and isinstance(node.target, ast.Name):
            loads.append(node.target)
    loads.sort(key=lambda n: (n.lineno, n.col_offset))
    return loads


def _top_level_globals(body: Sequence[ast.stmt]) -> set:
    names = set()
    stack = list(body)
    while stack:
        node = stack.pop()
        if isinstance(node, ast.Global):
            names.update(node.names)
        elif not isinstance(node, _NEW_SCOPES):
            stack.extend(ast.iter_child_nodes(node))
    return names


def has_top_level_await(body: Sequence[ast.stmt]) -> bool:
    """Whether the cell suspends outside of any function it defines."""
    stack = list(body)
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.Await, ast.AsyncFor, ast.AsyncWith)):
            return True
        if isinstance(node, ast.comprehension) and node.is_async:
            return True
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            # Decorators and defaults are evaluated in the enclosing scope.
            stack.extend(node.decorator_list)
            stack.extend(node.args.defaults)
            stack.extend(d for d in node.args.kw_defaults if d is not None)
            continue
        if isinstance(node, ast.ClassDef):
            stack.extend(node.decorator_list)
            stack.extend(node.bases)
            stack.extend(k.value for k in node.keywords)
            continue
        if isinstance(node, ast.Lambda):
            stack.extend(node.args.defaults)
            stack.extend(d for d in node.args.kw_defaults if d is not None)
            continue
        stack.extend(ast.iter_child_nodes(node))
    return False


# ===================================================================
# 2. Import rewriting
# ===================================================================

class _ImportRewriter(ast.NodeTransformer):
    """Replaces import statements with `__require__` calls and records specifiers."""

    def __init__(self, keep_future: bool = False):
        self.keep_future = keep_future
        self.specifiers: List[str] = []
        self.wildcards: List[ast.ImportFrom] = []

    def _note(self, specifier):
        # Parent packages are imported before their submodules.
        for prefix in specifier_prefixes(specifier):
            if prefix not in self.specifiers:
                self.specifiers.append(prefix)

    def visit_Import(self, node):
        out = []
        for alias in node.names:
            self._note(alias.name)
            if alias.asname:
                out.append(f"{alias.asname} = {REQUIRE_PARAM}({alias.name!r})")
                continue
            top = alias.name.split(".")[0]
            if top != alias.name:
                out.append(f"{REQUIRE_PARAM}({alias.name!r})")
            out.append(f"{top} = {REQUIRE_PARAM}({top!r})")
        return [_stmt(s) for s in out]

    def visit_ImportFrom(self, node):
        if node.module == "__future__":
            return node if self.keep_future else None
        specifier = "." * node.level + (node.module or "")
        if any(alias.name == "*" for alias in node.names):
            self.wildcards.append(node)
            return node
        out = []
        self._note(specifier)
        for alias in node.names:
            self._note(join_specifier(specifier, alias.name))
            target = alias.asname or alias.name
            out.append(f"{target} = {REQUIRE_PARAM}({specifier!r}, {alias.name!r})")
        return [_stmt(s) for s in out]


# ===================================================================
# 3. Declarations
# ===================================================================

def _declaration_lines(body: Iterable[ast.stmt], decls: Optional["OrderedDict[str, str]"] = None) -> "OrderedDict[str, str]":
    """Fold the declarations made by `body` into `decls`, in statement order."""
    if decls is None:
        decls = OrderedDict()
    for stmt in body:
        for name in _deleted_names(stmt):
            decls.pop(name, None)
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            prefix = "async def" if isinstance(stmt, ast.AsyncFunctionDef) else "def"
            returns = f" -> {ast.unparse(stmt.returns)}" if stmt.returns else ""
            decls[stmt.name] = f"{prefix} {stmt.name}({ast.unparse(stmt.args)}){returns}: ..."
            continue
        if isinstance(stmt, ast.ClassDef):
            bases = ", ".join(ast.unparse(b) for b in stmt.bases)
            decls[stmt.name] = f"class {stmt.name}({bases}): ..." if bases else f"class {stmt.name}: ..."
            continue
        if isinstance(stmt, ast.Import):
            for alias in stmt.names:
                decls[_alias_binding(alias, False)] = f"{_alias_binding(alias, False)}: module"
            continue
        if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            decls[stmt.target.id] = f"{stmt.target.id}: {ast.unparse(stmt.annotation)}"
            continue
        for name in _top_level_bindings(stmt):
            decls[name] = f"{name}: object"
    return decls


def parse_declarations(text: str) -> "OrderedDict[str, str]":
    """Map each name declared in `text` to its declaration line."""
    decls: "OrderedDict[str, str]" = OrderedDict()
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            stmt = _stmt(line)
        except SyntaxError:
            continue
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            decls[stmt.name] = line
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            decls[stmt.target.id] = line
    return decls


def _declaration_kind(line: str) -> str:
    if line.startswith(("def ", "async def ")):
        return "function"
    if line.startswith("class "):
        return "class"
    if line.endswith(": module"):
        return "module"
    return "variable"


def _is_ident_char(c: str) -> bool:
    return c.isalnum() or c == "_"


# ===================================================================
# 4. The compiler
# ===================================================================

class PythonCompiler:
    """Compiles Python cells for the executor.

    `root_dir` is the directory cell imports resolve against. Modules
    registered with `register_module` shadow files on disk.
    """

    def __init__(self, root_dir: Optional[str] = None, extension: str = DEFAULT_EXTENSION,
                 self_name: str = "pycell", extra_globals: Sequence[str] = ()):
        self.root_dir = os.path.abspath(root_dir or os.getcwd())
        self.extension = extension
        self.self_name = self_name
        self.extra_globals = frozenset(extra_globals)
        self._modules: Dict[str, str] = {}
        self._emitted: Dict[str, str] = {}

    # --- Cells ---

    def compile(self, prior: str, src: str) -> CompilationResult:
        prior_decls = parse_declarations(prior)
        try:
            compile(src, "<cell>", "exec", flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT, dont_inherit=True)
            tree = ast.parse(src, filename="<cell>")
        except SyntaxError as e:
            return CompilationResult(declarations=prior, diagnostics=[_syntax_diagnostic(e)])
        except ValueError as e:
            return CompilationResult(declarations=prior, diagnostics=[Diagnostic(message=str(e))])

        diagnostics = self._check_names(tree, prior_decls)
        rewriter = _ImportRewriter()
        body, last_binding = self._build_body(tree, prior_decls, rewriter)
        for node in rewriter.wildcards:
            diagnostics.append(Diagnostic(
                message="wildcard imports are not supported in cells",
                line=node.lineno - 1, character=node.col_offset,
            ))

        decls = _declaration_lines(tree.body, OrderedDict(prior_decls))

        side_modules = self._collect_side_modules(rewriter.specifiers, self.root_dir, diagnostics)
        result = CompilationResult(
            body=body,
            declarations="".join(f"{line}\n" for line in decls.values()),
            diagnostics=diagnostics,
            side_modules=side_modules,
            has_top_level_await=has_top_level_await(tree.body),
            last_expression_binding=last_binding,
        )
        logger.debug("compiled cell: %d diagnostics, %d side modules, await=%s",
                     len(diagnostics), len(side_modules), result.has_top_level_await)
        return result

    def _check_names(self, tree: ast.Module, prior_decls) -> List[Diagnostic]:
        known = _bound_anywhere(tree) | set(prior_decls) | BUILTIN_NAMES | self.extra_globals
        diagnostics, reported = [], set()
        for node in _loaded_names(tree):
            if node.id in known or node.id in reported:
                continue
            reported.add(node.id)
            diagnostics.append(Diagnostic(
                message=f"name '{node.id}' is not defined",
                line=node.lineno - 1, character=node.col_offset,
            ))
        return diagnostics

    def _build_body(self, tree: ast.Module, prior_decls, rewriter: _ImportRewriter) -> Tuple[str, Optional[str]]:
        stmts: List[ast.stmt] = []
        last_binding = None
        count = len(tree.body)
        for index, stmt in enumerate(tree.body):
            is_last = index == count - 1
            if isinstance(stmt, ast.AnnAssign) and stmt.value is None:
                # A bare annotation only declares.
                continue
            if is_last and isinstance(stmt, ast.Expr):
                capture = _stmt(f"{EXPORTS_PARAM}.assign({LAST_EXPRESSION!r}, None)")
                capture.value.args[1] = stmt.value
                stmts.append(capture)
                last_binding = LAST_EXPRESSION
                continue
            rewritten = rewriter.visit(stmt)
            if isinstance(rewritten, list):
                stmts.extend(rewritten)
            elif rewritten is not None:
                stmts.append(rewritten)
            for name in _top_level_bindings(stmt):
                if isinstance(stmt, _COMPOUND):
                    # The branch that binds it may not have run.
                    stmts.append(_stmt(
                        f"try:\n    {EXPORTS_PARAM}.assign({name!r}, {name})\n"
                        f"except NameError:\n    pass"
                    ))
                else:
                    stmts.append(_stmt(f"{EXPORTS_PARAM}.assign({name!r}, {name})"))
            for name in _deleted_names(stmt):
                stmts.append(_stmt(f"{EXPORTS_PARAM}.remove({name!r})"))
            if is_last and self._is_displayed_assignment(stmt):
                target = stmt.targets[0] if isinstance(stmt, ast.Assign) else stmt.target
                stmts.append(_stmt(f"{EXPORTS_PARAM}.assign({LAST_EXPRESSION!r}, {target.id})"))
                last_binding = LAST_EXPRESSION
        if not stmts:
            return "", None

        mentioned = {n.id for n in ast.walk(tree) if isinstance(n, ast.Name)}
        globals_ = _top_level_globals(tree.body)
        preload = [
            _stmt(f"{name} = {EXPORTS_PARAM}.get({name!r})")
            for name in prior_decls
            if name in mentioned and name not in globals_
        ]
        module = ast.Module(body=preload + stmts, type_ignores=[])
        return ast.unparse(module) + "\n", last_binding

    @staticmethod
    def _is_displayed_assignment(stmt: ast.stmt) -> bool:
        if isinstance(stmt, ast.Assign):
            return len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name)
        return isinstance(stmt, ast.AugAssign) and isinstance(stmt.target, ast.Name)

    # --- Modules ---

    def _relative_name(self, path: str) -> str:
        return os.path.relpath(path, self.root_dir)

    def register_module(self, name: str, src: str, metadata: Optional[CodeMetadata] = None) -> List[Diagnostic]:
        """Record `src` as the module `name`, importable from any cell."""
        path = candidate_paths(name, self.root_dir, self.extension)[0]
        self._modules[path] = src
        try:
            compile(src, path, "exec", dont_inherit=True)
        except SyntaxError as e:
            return [_syntax_diagnostic(e, self._relative_name(path))]
        logger.debug("registered module %s at %s", name, path)
        return []

    def convert_module(self, src: str, path: str) -> Tuple[Optional[str], List[str], List[Diagnostic]]:
        """Rewrite a module's imports. Returns (text, imported specifiers, diagnostics)."""
        file_name = self._relative_name(path)
        try:
            compile(src, path, "exec", dont_inherit=True)
            tree = ast.parse(src, filename=path)
        except SyntaxError as e:
            return None, [], [_syntax_diagnostic(e, file_name)]
        rewriter = _ImportRewriter(keep_future=True)
        tree = rewriter.visit(tree)
        diagnostics = [
            Diagnostic(message="wildcard imports are not supported in generated modules",
                       line=node.lineno - 1, character=node.col_offset, file_name=file_name)
            for node in rewriter.wildcards
        ]
        return ast.unparse(tree) + "\n", rewriter.specifiers, diagnostics

    def _locate(self, specifier: str, dirname: str) -> Optional[str]:
        for path in candidate_paths(specifier, dirname, self.extension):
            if path in self._modules or os.path.isfile(path):
                return path
        return None

    def _read(self, path: str) -> str:
        if path in self._modules:
            return self._modules[path]
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def _collect_side_modules(self, specifiers: Iterable[str], dirname: str,
                              diagnostics: List[Diagnostic]) -> List[SideModule]:
        out: List[SideModule] = []
        seen = set()
        queue = [(s, dirname) for s in specifiers]
        while queue:
            specifier, base = queue.pop(0)
            if specifier == self.self_name:
                continue
            path = self._locate(specifier, base)
            if path is None or path in seen:
                continue
            seen.add(path)
            text, nested, diags = self.convert_module(self._read(path), path)
            if diags:
                diagnostics.extend(diags)
                continue
            module_dir = os.path.dirname(path)
            queue.extend((s, module_dir) for s in nested)
            if self._emitted.get(path) != text:
                self._emitted[path] = text
                out.append(SideModule(path=path, source=text))
        return out

    # --- Inspection ---

    def _scope_entries(self, prior: str, src: str) -> "OrderedDict[str, str]":
        entries = parse_declarations(prior)
        try:
            tree = ast.parse(src)
        except SyntaxError:
            return entries
        return _declaration_lines(tree.body, entries)

    def inspect(self, prior: str, src: str, position: int) -> Optional[Dict[str, Any]]:
        start = end = max(0, min(position, len(src)))
        while start > 0 and _is_ident_char(src[start - 1]):
            start -= 1
        while end < len(src) and _is_ident_char(src[end]):
            end += 1
        name = src[start:end]
        if not name or name[0].isdigit():
            return None
        entries = self._scope_entries(prior, src)
        documentation = ""
        if name in entries:
            display = entries[name]
            kind = _declaration_kind(display)
        elif keyword.iskeyword(name):
            kind, display = "keyword", name
        elif name in BUILTIN_NAMES:
            obj = getattr(builtins, name)
            kind = "builtin"
            display = f"{name}: {type(obj).__name__}"
            documentation = (getattr(obj, "__doc__", None) or "").strip().split("\n")[0]
        elif name in self.extra_globals:
            kind, display = "global", f"{name}: object"
        else:
            return None
        return {
            "name": name,
            "kind": kind,
            "display": display,
            "documentation": documentation,
            "text_span": {"start": start, "length": end - start},
        }

    def complete(self, prior: str, src: str, position: int) -> Dict[str, Any]:
        position = max(0, min(position, len(src)))
        start = position
        while start > 0 and _is_ident_char(src[start - 1]):
            start -= 1
        prefix = src[start:position]
        if start > 0 and src[start - 1] == ".":
            # Attribute completion needs runtime values the compiler does not have.
            return {"start": start, "end": position, "candidates": []}
        pool = set(self._scope_entries(prior, src))
        pool.update(BUILTIN_NAMES, keyword.kwlist, self.extra_globals)
        candidates = sorted(
            n for n in pool
            if n.startswith(prefix) and (prefix.startswith("_") or not n.startswith("_"))
        )
        return {"start": start, "end": position, "candidates": candidates}

    def close(self) -> None:
        self._modules.clear()
        self._emitted.clear()
