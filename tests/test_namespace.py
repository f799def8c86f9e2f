from pycell import ExportNamespace
from pycell.cell_declarations import DeclarationState
from pycell.cell_namespace import RESERVED_MARKER


def test_assign_overwrites_in_place():
    ns = ExportNamespace()
    ns.assign("x", 1)
    ns.assign("y", 2)
    ns.assign("x", 3)
    assert ns.snapshot() == {"x": 3, "y": 2}
    assert list(ns) == ["x", "y"]


def test_reserved_marker_is_ignored():
    ns = ExportNamespace()
    ns.assign(RESERVED_MARKER, ["x"])
    ns[RESERVED_MARKER] = ["y"]
    assert RESERVED_MARKER not in ns
    assert ns.snapshot() == {}


def test_remove_missing_name_is_silent():
    ns = ExportNamespace({"a": 1})
    ns.remove("a")
    ns.remove("a")
    assert ns.snapshot() == {}


def test_snapshot_is_a_copy():
    ns = ExportNamespace()
    ns.assign("x", 1)
    snap = ns.snapshot()
    snap["x"] = 2
    assert ns["x"] == 1
    assert repr(ns) == "ExportNamespace({'x': 1})"


def test_declaration_state():
    state = DeclarationState()
    assert state.current() == ""
    state.merge("x: int\n")
    assert state.current() == "x: int\n"
    state.merge("x: int\ny: str\n")
    assert state.current() == "x: int\ny: str\n"
    state.clear()
    assert state.current() == ""
