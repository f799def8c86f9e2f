from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

import pystache
import yaml

from pycell.cell_datatypes import Diagnostic

DEFAULT_DIAGNOSTIC_TEMPLATE = "{{file_prefix}}{{line}}:{{col}} - {{message}}"


@dataclass
class EngineConfig:
    """Settings for one executor. All fields have working defaults."""
    root_dir: Optional[str] = None
    extension: str = ".py"
    self_name: str = "pycell"
    diagnostic_template: str = DEFAULT_DIAGNOSTIC_TEMPLATE
    interrupt_message: str = "Interrupted asynchronously"

    def __post_init__(self):
        self.root_dir = os.path.abspath(os.path.expanduser(self.root_dir or os.getcwd()))
        if not self.extension.startswith("."):
            self.extension = "." + self.extension

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EngineConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def format_diagnostic(self, diag: Diagnostic) -> str:
        # Templates are plain text, not HTML: no escaping.
        renderer = pystache.Renderer(escape=lambda u: u)
        return renderer.render(self.diagnostic_template, diag.template_context())


def load_config(path: str) -> EngineConfig:
    """Load an `EngineConfig` from a YAML file.

    A relative `root_dir` is taken relative to the config file's directory.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path!r} must contain a mapping")
    root = data.get("root_dir")
    if root and not os.path.isabs(os.path.expanduser(root)):
        data["root_dir"] = os.path.join(os.path.dirname(os.path.abspath(path)), root)
    return EngineConfig.from_mapping(data)
