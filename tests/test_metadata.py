from pycell import get_code_metadata


def test_plain_cell():
    meta = get_code_metadata("x = 1")
    assert meta.mode == "local"
    assert meta.module is None
    assert meta.directives == []


def test_module_directive():
    meta = get_code_metadata("# @module mylib\nx = 1")
    assert meta.module == "mylib"
    assert meta.mode == "local"


def test_browser_module_on_one_line():
    meta = get_code_metadata("# @browser @module widgets.core\nx = 1")
    assert meta.mode == "browser"
    assert meta.module == "widgets.core"
    assert meta.directives == ["browser", "module"]


def test_directives_span_leading_comment_block():
    meta = get_code_metadata("\n# setup\n# @browser\n\n# @node\nx = 1")
    assert meta.mode == "local"
    assert meta.directives == ["browser", "node"]


def test_directives_after_code_are_ignored():
    meta = get_code_metadata("x = 1\n# @module late")
    assert meta.module is None


def test_module_without_name_is_ignored():
    assert get_code_metadata("# @module\nx = 1").module is None
