"""Running carousels on real clocks: timer threads and an asyncio event loop."""

import asyncio
import threading

import pytest

from carouselstate.carousels import final
from carouselstate.carousels.common import CarouselOptions
from carouselstate.runtime.interpreter import Interpreter, InterpreterStatus
from carouselstate.runtime.timers import AsyncioClock, ThreadingClock


class RemoteLoader:
    """Coroutine loader standing in for a network fetch."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def load(self, total):
        self.calls += 1
        await asyncio.sleep(0.01)
        if self.fail:
            raise ConnectionError("image server unreachable")
        return [f"https://images.example/{index}.png" for index in range(total)]


def test_threading_clock_drives_autoplay():
    advanced = threading.Event()

    def on_snapshot(snapshot):
        if snapshot.context["cursor"] >= 2:
            advanced.set()

    interpreter = Interpreter(final.create_machine(CarouselOptions(total=5, auto_play=20)), clock=ThreadingClock())
    interpreter.subscribe(on_snapshot)
    interpreter.start()
    try:
        assert advanced.wait(5.0)
    finally:
        interpreter.stop()
    assert interpreter.status == InterpreterStatus.STOPPED
    assert interpreter.timers.pending() == 0


def test_sends_from_many_threads_are_serialised():
    interpreter = Interpreter(final.create_machine(CarouselOptions(total=50, cyclic=True)), clock=ThreadingClock())
    interpreter.start()

    def press_next():
        for _ in range(10):
            interpreter.send("next")

    threads = [threading.Thread(target=press_next) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert interpreter.get_snapshot().context["cursor"] == 40
    interpreter.stop()


@pytest.mark.asyncio
async def test_asyncio_host_loads_and_plays():
    loader = RemoteLoader()
    ticked = asyncio.Event()

    def on_snapshot(snapshot):
        if snapshot.matches("loaded") and snapshot.context["cursor"] >= 1:
            ticked.set()

    machine = final.create_machine(CarouselOptions(total=3, auto_play=10), image_loader=loader)
    interpreter = Interpreter(machine, clock=AsyncioClock())
    interpreter.subscribe(on_snapshot)
    assert interpreter.start().value == "loading"

    await asyncio.wait_for(ticked.wait(), timeout=5.0)
    snapshot = interpreter.get_snapshot()
    assert snapshot.context["images"][0] == "https://images.example/0.png"
    assert loader.calls == 1
    interpreter.stop()


@pytest.mark.asyncio
async def test_asyncio_host_failure_and_reload():
    loader = RemoteLoader(fail=True)
    failed = asyncio.Event()
    interpreter = Interpreter(final.create_machine(image_loader=loader), clock=AsyncioClock())
    interpreter.subscribe(lambda snapshot: snapshot.has_tag("failed") and failed.set())
    interpreter.start()

    await asyncio.wait_for(failed.wait(), timeout=5.0)
    assert interpreter.get_snapshot().value == "failed"

    loader.fail = False
    interpreter.send("reload")
    for _ in range(100):
        if interpreter.get_snapshot().has_tag("loaded"):
            break
        await asyncio.sleep(0.01)
    assert interpreter.get_snapshot().has_tag("loaded")
    assert loader.calls == 2
    interpreter.stop()
