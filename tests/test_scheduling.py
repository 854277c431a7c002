import asyncio

import pytest

from canvas_suggestions.scheduling import (
    Debouncer,
    FlightState,
    RenderCoalescer,
    SchedulerConfig,
    SingleFlight,
)


def test_single_flight_queues_exactly_one_follow_up():
    async def scenario():
        release = asyncio.Event()
        runs = []

        async def job():
            runs.append(len(runs))
            if len(runs) == 1:
                await release.wait()

        flight = SingleFlight(job)
        first = asyncio.create_task(flight.run())
        await asyncio.sleep(0)
        assert flight.state is FlightState.RUNNING
        assert await flight.run() is False
        assert await flight.run() is False
        assert flight.state is FlightState.RUNNING_QUEUED
        release.set()
        assert await first is True
        return runs, flight

    runs, flight = asyncio.run(scenario())
    assert runs == [0, 1]
    assert flight.state is FlightState.IDLE
    assert flight.passes_started == 2


def test_single_flight_follow_up_starts_after_predecessor_finished():
    async def scenario():
        events = []
        gate = asyncio.Event()

        async def job():
            index = len([e for e in events if e.startswith("start")])
            events.append(f"start{index}")
            if index == 0:
                await gate.wait()
            events.append(f"end{index}")

        flight = SingleFlight(job)
        task = asyncio.create_task(flight.run())
        await asyncio.sleep(0)
        await flight.run()
        gate.set()
        await task
        return events

    assert asyncio.run(scenario()) == ["start0", "end0", "start1", "end1"]


def test_single_flight_survives_failing_job():
    async def scenario():
        calls = []

        async def job():
            calls.append(1)
            raise RuntimeError("boom")

        flight = SingleFlight(job)
        assert await flight.run() is True
        assert await flight.run() is True
        return calls, flight.state

    calls, state = asyncio.run(scenario())
    assert calls == [1, 1]
    assert state is FlightState.IDLE


def test_single_flight_reset_detaches_running_pass():
    async def scenario():
        gate = asyncio.Event()

        async def job():
            await gate.wait()

        flight = SingleFlight(job)
        task = asyncio.create_task(flight.run())
        await asyncio.sleep(0)
        flight.reset()
        assert flight.state is FlightState.IDLE
        gate.set()
        await task
        return flight

    flight = asyncio.run(scenario())
    assert flight.state is FlightState.IDLE
    assert flight.passes_started == 1


def test_debouncer_fires_once_for_a_burst():
    async def scenario():
        fired = []
        debouncer = Debouncer(lambda: fired.append(asyncio.get_running_loop().time()), 0.22)
        for _ in range(3):
            debouncer.schedule()
            await asyncio.sleep(0.02)
        assert debouncer.pending
        await asyncio.sleep(0.35)
        return fired, debouncer

    fired, debouncer = asyncio.run(scenario())
    assert len(fired) == 1
    assert not debouncer.pending


def test_debouncer_immediate_and_cancel():
    async def scenario():
        fired = []
        debouncer = Debouncer(lambda: fired.append("x"), 10)
        debouncer.schedule(immediate=True)
        await asyncio.sleep(0.01)
        debouncer.schedule()
        debouncer.cancel()
        await asyncio.sleep(0.01)
        return fired

    assert asyncio.run(scenario()) == ["x"]


def test_render_coalescer_defers_one_extra_frame():
    async def scenario():
        renders = []
        coalescer = RenderCoalescer(lambda: renders.append("frame"), frame_interval=0.01)
        coalescer.request()
        coalescer.request()
        coalescer.request()
        assert coalescer.pending
        await asyncio.sleep(0.1)
        return renders, coalescer

    renders, coalescer = asyncio.run(scenario())
    assert renders == ["frame", "frame"]
    assert not coalescer.pending


def test_render_coalescer_immediate_replaces_pending_frame():
    async def scenario():
        renders = []
        coalescer = RenderCoalescer(lambda: renders.append("frame"), frame_interval=0.01)
        coalescer.request()
        coalescer.request()
        coalescer.request(immediate=True)
        await asyncio.sleep(0.05)
        return renders

    assert asyncio.run(scenario()) == ["frame"]


def test_render_coalescer_without_loop_renders_synchronously():
    renders = []
    RenderCoalescer(lambda: renders.append("frame")).request()
    assert renders == ["frame"]


def test_scheduler_config_from_env(monkeypatch):
    monkeypatch.setenv("CANVAS_SUGGESTIONS_DEBOUNCE_MS", "50")
    config = SchedulerConfig.from_env()
    assert config.debounce_seconds == pytest.approx(0.05)
    monkeypatch.setenv("CANVAS_SUGGESTIONS_DEBOUNCE_MS", "-5")
    with pytest.raises(ValueError):
        SchedulerConfig.from_env()


def test_debouncer_without_loop_drops_the_call():
    fired = []
    debouncer = Debouncer(lambda: fired.append("x"), 0.01)
    assert debouncer.schedule() is False
    assert not debouncer.pending
    assert fired == []


def test_wait_idle_covers_detached_passes():
    async def scenario():
        gate = asyncio.Event()
        finished = []

        async def job():
            await gate.wait()
            finished.append(True)

        flight = SingleFlight(job)
        await flight.wait_idle()
        task = asyncio.create_task(flight.run())
        await asyncio.sleep(0)
        flight.reset()
        waiter = asyncio.create_task(flight.wait_idle())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        gate.set()
        await waiter
        await task
        return finished

    assert asyncio.run(scenario()) == [True]
