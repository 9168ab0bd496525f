import asyncio
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from fakes import FakeGateway, entry
from rest_timer import RestTimer
from session_models import Phase, Position, RestType
from session_runner import SessionRunner


@pytest.mark.asyncio
async def test_timer_runs_to_completion():
    done = []
    timer = RestTimer(3, on_complete=lambda: done.append(True), tick=0.001)
    assert await timer.run()
    assert timer.remaining == 0
    assert done == [True]


@pytest.mark.asyncio
async def test_skip_stops_countdown():
    skipped = []

    async def on_skip():
        skipped.append(True)

    timer = RestTimer(60, on_skip=on_skip, tick=0.01)
    task = asyncio.create_task(timer.run())
    await asyncio.sleep(0.03)
    timer.skip()
    assert not await task
    assert timer.skipped
    assert timer.remaining > 0
    assert skipped == [True]


@pytest.mark.asyncio
async def test_zero_duration_completes_immediately():
    assert await RestTimer(0, tick=10).run()


def test_negative_duration_rejected():
    with pytest.raises(ValueError):
        RestTimer(-1)


@pytest.mark.asyncio
async def test_timer_drives_runner_rest():
    gateway = FakeGateway()
    tid = gateway.add_template([entry("Press", 2), entry("Row", 1, order_index=1)])
    runner = SessionRunner(gateway, {"rest_time_set": 2})
    await runner.start(tid)
    await runner.complete_set()
    assert runner.state.rest_type is RestType.SET

    timer = RestTimer(runner.rest_seconds(), on_complete=runner.finish_rest, tick=0.001)
    await timer.run()
    assert runner.state.phase is Phase.EXERCISE
    assert runner.state.position == Position(0, 1)
