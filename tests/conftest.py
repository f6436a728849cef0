import concurrent.futures
from typing import List

import pytest

from carouselstate.carousels.common import KeyboardEmitter
from carouselstate.runtime.snapshot import Snapshot
from carouselstate.runtime.timers import ManualClock


class RecordingView:
    """CarouselView recording every call."""

    def __init__(self):
        self.scrolls: List[int] = []
        self.smooth_scroll_enabled = 0

    def scroll_to_item(self, index: int) -> None:
        self.scrolls.append(index)

    def enable_smooth_scroll(self) -> None:
        self.smooth_scroll_enabled += 1


class ControlledLoader:
    """ImageLoader returning futures settled by the test."""

    def __init__(self):
        self.futures: List[concurrent.futures.Future] = []
        self.requested: List[int] = []

    def load(self, total: int) -> concurrent.futures.Future:
        future = concurrent.futures.Future()
        # Loads are in flight and can no longer be cancelled
        future.set_running_or_notify_cancel()
        self.requested.append(total)
        self.futures.append(future)
        return future

    @property
    def calls(self) -> int:
        return len(self.futures)

    def resolve(self, images=None, index: int = -1) -> None:
        future = self.futures[index]
        future.set_result(images if images is not None else [f"img{i}" for i in range(self.requested[index])])

    def reject(self, error: Exception = None, index: int = -1) -> None:
        self.futures[index].set_exception(error or IOError("image failed to load"))


def check_configuration(snapshot: Snapshot) -> None:
    """Assert the configuration invariant: complete down to leaves."""
    active = snapshot.nodes
    roots = [node for node in active if node.parent is None]
    assert len(roots) == 1
    for node in active:
        if node.parent is not None:
            assert node.parent in active, f"{node.id} active without its parent"
        if node.is_compound:
            children = [child for child in node.child_nodes if child in active]
            assert len(children) == 1, f"{node.id} has {len(children)} active children"
        elif node.is_parallel:
            assert all(region in active for region in node.child_nodes), f"{node.id} has inactive regions"


@pytest.fixture
def manual_clock():
    """A virtual clock advanced explicitly."""
    return ManualClock()


@pytest.fixture
def recording_view():
    return RecordingView()


@pytest.fixture
def controlled_loader():
    return ControlledLoader()


@pytest.fixture
def keyboard():
    """An in-memory arrow-key source."""
    return KeyboardEmitter()


@pytest.fixture
def configuration_checker():
    return check_configuration
