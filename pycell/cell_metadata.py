"""
Classifies a cell by the directives in its leading comment block.

    # @module mylib
    # @browser
    x = 1

`@module NAME` declares the cell as an importable module; `@browser` targets
the display-only browser environment; `@node`/`@local` force local execution.
Directives are only read from comment lines before the first line of code.
"""

import re

from pycell.cell_datatypes import CodeMetadata

_DIRECTIVE = re.compile(r"@([A-Za-z_][\w-]*)(?:[ \t]+([A-Za-z_][\w.]*))?")
_VALUED = {"module"}


def get_code_metadata(src: str) -> CodeMetadata:
    meta = CodeMetadata()
    for line in src.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("#"):
            break
        for m in _DIRECTIVE.finditer(stripped):
            tag, value = m.group(1), m.group(2)
            meta.directives.append(tag)
            if tag in _VALUED and value:
                meta.module = value
            elif tag == "browser":
                meta.mode = "browser"
            elif tag in ("node", "local"):
                meta.mode = "local"
    return meta
