from collections import UserDict
from typing import Any, Dict

# Assigning this name is accepted and ignored; wildcard-export lists have no
# meaning in a namespace shared across cells.
RESERVED_MARKER = "__all__"


class ExportNamespace(UserDict):
    """The mutable bag of bindings that every cell reads from and publishes to.

    Redeclaring a name always overwrites it in place; there is no
    "already declared" condition.
    """

    def __setitem__(self, key: str, value: Any):
        if key == RESERVED_MARKER:
            return
        self.data[key] = value

    def assign(self, name: str, value: Any) -> None:
        self[name] = value

    def remove(self, name: str) -> None:
        self.data.pop(name, None)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.data)

    def __repr__(self):
        return f"ExportNamespace({self.data!r})"
