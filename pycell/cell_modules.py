"""
Module resolution for cell bodies and generated modules.

Every cell body and every generated module receives a `Loader` as
`__require__`. Import statements are compiled into calls to it, so all
imports go through one resolver chain:

  1. the engine's own package name returns the engine's public interface,
  2. a cached module instance for the resolved path is reused,
  3. recorded source text for the path is compiled into a fresh module,
  4. anything else is delegated to the host import system.
"""

from __future__ import annotations

import importlib
import logging
import os
import types
from typing import Dict, Iterable, List, Optional

from pycell.cell_datatypes import SideModule
from pycell.cell_realm import remember_source

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".py"


# ===================================================================
# 1. Specifiers
# ===================================================================

def is_path_specifier(specifier: str) -> bool:
    return "/" in specifier or os.sep in specifier


def is_relative_specifier(specifier: str) -> bool:
    return specifier.startswith(".") or is_path_specifier(specifier)


def join_specifier(specifier: str, name: str) -> str:
    """The specifier of submodule `name` of `specifier` (`pkg` + `mod` -> `pkg.mod`)."""
    if specifier.strip(".") == "":
        return specifier + name
    return f"{specifier}.{name}"


def specifier_prefixes(specifier: str) -> List[str]:
    """`pkg.sub.mod` -> `[pkg, pkg.sub, pkg.sub.mod]`; leading dots are kept on each."""
    stripped = specifier.lstrip(".")
    dots = specifier[: len(specifier) - len(stripped)]
    if not stripped or is_path_specifier(specifier):
        return [specifier]
    parts = stripped.split(".")
    return [dots + ".".join(parts[:i]) for i in range(1, len(parts) + 1)]


def specifier_to_path(specifier: str, dirname: str) -> str:
    """Resolve a specifier against the importing directory, without extension.

    `a.b` -> `<dir>/a/b`; each leading dot beyond the first climbs one
    directory (`..a` -> `<dir>/../a`). Specifiers containing a path separator
    are joined as plain paths.
    """
    if is_path_specifier(specifier):
        return os.path.normpath(os.path.join(dirname, specifier))
    stripped = specifier.lstrip(".")
    level = len(specifier) - len(stripped)
    parts = [".."] * max(level - 1, 0)
    if stripped:
        parts.extend(stripped.split("."))
    return os.path.normpath(os.path.join(dirname, *parts))


def candidate_paths(specifier: str, dirname: str, extension: str = DEFAULT_EXTENSION) -> List[str]:
    """Absolute source paths a specifier may denote, in lookup order."""
    base = specifier_to_path(specifier, dirname)
    if is_path_specifier(specifier) and os.path.splitext(base)[1]:
        return [base]
    package_init = os.path.join(base, "__init__" + extension)
    if specifier.strip(".") == "":
        return [package_init]
    return [base + extension, package_init]


# ===================================================================
# 2. The cache
# ===================================================================

class ModuleCache:
    """Memoizes generated module sources and the module instances built from them.

    Source text is only ever overwritten. A module instance is valid until
    new source is recorded for its path.
    """

    def __init__(self, root_dir: Optional[str] = None, extension: str = DEFAULT_EXTENSION,
                 self_name: str = "pycell", interface: Optional[types.ModuleType] = None):
        self.root_dir = os.path.abspath(root_dir or os.getcwd())
        self.extension = extension
        self.self_name = self_name
        self._interface = interface
        self.sources: Dict[str, str] = {}
        self.instances: Dict[str, types.ModuleType] = {}

    def update(self, side_modules: Iterable[SideModule]) -> None:
        for mod in side_modules:
            if self.instances.pop(mod.path, None) is not None:
                logger.debug("dropped stale module instance for %s", mod.path)
            self.sources[mod.path] = mod.source

    def interface(self) -> types.ModuleType:
        if self._interface is None:
            self._interface = importlib.import_module(self.self_name)
        return self._interface

    def find(self, specifier: str, dirname: str) -> Optional[str]:
        """The path of a cached or recorded module for `specifier`, if any."""
        for path in candidate_paths(specifier, dirname, self.extension):
            if path in self.instances or path in self.sources:
                return path
        return None

    def load(self, specifier: str, dirname: str):
        if specifier == self.self_name:
            return self.interface()
        path = self.find(specifier, dirname)
        package_dir = None if path is not None else self._namespace_dir(specifier, dirname)
        if path is None and package_dir is None:
            return self._host_import(specifier)
        # Parents are imported first and hold their submodules as attributes.
        parent = self._load_parent(specifier, dirname)
        if path is not None:
            module = self.instances.get(path)
            if module is None:
                module = self._instantiate(path)
        else:
            module = self.instances.get(package_dir)
            if module is None:
                module = self._namespace(package_dir)
        if parent is not None:
            setattr(parent, specifier.rpartition(".")[2], module)
        return module

    def _load_parent(self, specifier: str, dirname: str):
        head = specifier.rpartition(".")[0]
        if is_path_specifier(specifier) or not head.strip("."):
            return None
        if self.find(head, dirname) is None and self._namespace_dir(head, dirname) is None:
            return None
        return self.load(head, dirname)

    def _namespace_dir(self, specifier: str, dirname: str) -> Optional[str]:
        """The directory of a package with no `__init__` whose submodules were recorded."""
        if is_path_specifier(specifier):
            return None
        base = specifier_to_path(specifier, dirname)
        prefix = base + os.sep
        if any(path.startswith(prefix) for path in self.sources):
            return base
        return None

    def _namespace(self, package_dir: str) -> types.ModuleType:
        module = types.ModuleType(self._module_name(package_dir))
        module.__path__ = [package_dir]
        self.instances[package_dir] = module
        logger.debug("created namespace package %s", package_dir)
        return module

    def loader(self, dirname: Optional[str] = None) -> "Loader":
        return Loader(self, dirname or self.root_dir)

    def _module_name(self, path: str) -> str:
        rel = os.path.relpath(os.path.splitext(path)[0], self.root_dir)
        name = rel.replace(os.sep, ".")
        if name.endswith(".__init__"):
            name = name[: -len(".__init__")]
        return name

    def _instantiate(self, path: str) -> types.ModuleType:
        source = self.sources[path]
        module = types.ModuleType(self._module_name(path))
        module.__file__ = path
        # Nested imports resolve relative to the module's own directory.
        module.__dict__["__require__"] = self.loader(os.path.dirname(path))
        remember_source(path, source)
        code = compile(source, path, "exec")
        self.instances[path] = module
        try:
            exec(code, module.__dict__)
        except BaseException:
            self.instances.pop(path, None)
            raise
        logger.debug("loaded generated module %s", path)
        return module

    def _host_import(self, specifier: str):
        if is_relative_specifier(specifier):
            raise ModuleNotFoundError(f"No module named {specifier!r}", name=specifier)
        return importlib.import_module(specifier)


class Loader:
    """The `__require__` callable bound to one importing directory."""

    def __init__(self, cache: ModuleCache, dirname: str):
        self.cache = cache
        self.dirname = dirname

    def __call__(self, specifier: str, name: Optional[str] = None):
        if name is None:
            return self.cache.load(specifier, self.dirname)
        # `from specifier import name`: a generated submodule wins over an attribute.
        sub = join_specifier(specifier, name)
        if self.cache.find(sub, self.dirname) is not None:
            return self.cache.load(sub, self.dirname)
        module = self.cache.load(specifier, self.dirname)
        try:
            return getattr(module, name)
        except AttributeError:
            pass
        try:
            return self.cache.load(sub, self.dirname)
        except ModuleNotFoundError:
            raise ImportError(f"cannot import name {name!r} from {specifier!r}", name=specifier) from None

    def __repr__(self):
        return f"<Loader {self.dirname!r}>"
