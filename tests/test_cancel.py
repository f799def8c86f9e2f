import asyncio
import pytest

from pycell import CellError, Interrupted
from pycell.cell_cancel import CancellationController


def test_interrupt_without_loop_is_a_noop():
    c = CancellationController()
    c.interrupt()
    c.interrupt()


@pytest.mark.asyncio
async def test_race_returns_result():
    c = CancellationController()
    assert await c.race(asyncio.sleep(0, result=5)) == 5


@pytest.mark.asyncio
async def test_race_propagates_failure():
    async def boom():
        raise KeyError("inner")
    c = CancellationController()
    with pytest.raises(KeyError):
        await c.race(boom())


@pytest.mark.asyncio
async def test_interrupt_rejects_pending_race_and_rearms():
    c = CancellationController("stop")
    sleeper = asyncio.ensure_future(asyncio.sleep(10))
    task = asyncio.ensure_future(c.race(sleeper))
    await asyncio.sleep(0.01)
    first = c.current()
    c.interrupt()
    with pytest.raises(Interrupted) as exc:
        await task
    assert exc.value == Interrupted("stop")
    await asyncio.sleep(0)
    assert sleeper.cancelled()

    second = c.current()
    assert second is not first
    assert not second.done()
    assert await c.race(asyncio.sleep(0, result="again")) == "again"


@pytest.mark.asyncio
async def test_interrupt_between_races():
    c = CancellationController()
    signal = c.current()
    c.interrupt()
    # The fired signal is consumed; the next race gets a fresh one.
    assert signal.done()
    assert await c.race(asyncio.sleep(0, result=1)) == 1


@pytest.mark.asyncio
async def test_cancelled_body_is_reported():
    async def cancels_itself():
        asyncio.current_task().cancel()
        await asyncio.sleep(1)
    c = CancellationController()
    with pytest.raises(CellError, match="cancelled"):
        await c.race(cancels_itself())


def test_interrupted_equality():
    assert Interrupted("a") == Interrupted("a")
    assert Interrupted("a") != Interrupted("b")
    assert len({Interrupted("a"), Interrupted("a")}) == 1
