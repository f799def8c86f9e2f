import io
import pytest

from pycell import ConsoleSink, ExecutionOutcome, Interrupted, OutputSink, SideEffectSink


def test_output_sink_is_abstract():
    with pytest.raises(TypeError):
        OutputSink()


def test_side_effect_sink_records_order():
    sink = SideEffectSink()
    sink.write_result(1)
    sink.write_error("1:1 - bad")
    sink.write_result("two")
    assert sink.side_effects == [
        {'topics': ['stdout'], 'value': 1},
        {'topics': ['stderr'], 'value': "1:1 - bad"},
        {'topics': ['stdout'], 'value': "two"},
    ]
    assert sink.results == [1, "two"]
    assert sink.errors == ["1:1 - bad"]
    sink.clear()
    assert sink.side_effects == []


def test_console_sink():
    out, err = io.StringIO(), io.StringIO()
    sink = ConsoleSink(stdout=out, stderr=err)
    sink.write_result("text")
    sink.write_result({"a": 1})
    sink.write_error("1:1 - already formatted")
    sink.write_error(ValueError("boom"))
    assert out.getvalue() == "'text'\n{'a': 1}\n"
    assert err.getvalue() == "1:1 - already formatted\nValueError: boom\n"


def test_console_sink_follows_redirected_stdout(capsys):
    sink = ConsoleSink()
    sink.write_result(42)
    sink.write_error(Interrupted("Interrupted asynchronously"))
    out, err = capsys.readouterr()
    assert out == "42\n"
    assert err == "Interrupted: Interrupted asynchronously\n"


def test_outcome_ok():
    assert ExecutionOutcome('success').ok
    assert not ExecutionOutcome('fault', KeyError("k")).ok
    assert not ExecutionOutcome('cancelled').ok
