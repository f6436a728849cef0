"""Property-based checks of the carousel machines."""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from carouselstate.carousels import base, final
from carouselstate.carousels.common import CarouselOptions
from carouselstate.runtime.interpreter import Interpreter
from carouselstate.runtime.timers import ManualClock

NAVIGATION_EVENTS = ["next", "prev", "reset", "pause", "play", "enableAutoPlay", "disableAutoPlay"]

fixture_settings = settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])


@st.composite
def carousel_options(draw):
    total = draw(st.integers(min_value=3, max_value=12))
    return CarouselOptions(
        total=total,
        start_index=draw(st.integers(min_value=0, max_value=total - 1)),
        cyclic=draw(st.booleans()),
        auto_play=draw(st.integers(min_value=200, max_value=3000)),
    )


navigation_steps = st.lists(
    st.one_of(st.sampled_from(NAVIGATION_EVENTS), st.integers(min_value=1, max_value=3000)), max_size=40
)
go_to_steps = st.lists(
    st.one_of(
        st.sampled_from(NAVIGATION_EVENTS),
        st.integers(min_value=1, max_value=3000),
        st.tuples(st.just("goTo"), st.integers(min_value=0, max_value=11)),
    ),
    max_size=40,
)


def run_steps(options, steps):
    """Drive the final carousel and return every published snapshot."""
    clock = ManualClock()
    interpreter = Interpreter(final.create_machine(options), clock=clock)
    published = []
    interpreter.subscribe(published.append)
    interpreter.start()
    for step in steps:
        if isinstance(step, str):
            interpreter.send(step)
        elif isinstance(step, tuple):
            interpreter.send(step[0], cursor=min(step[1], options.total - 1))
        else:
            clock.advance(step)
    interpreter.stop()
    return published


@fixture_settings
@given(options=carousel_options(), steps=go_to_steps)
def test_configuration_is_always_complete(configuration_checker, options, steps):
    for snapshot in run_steps(options, steps):
        configuration_checker(snapshot)


@fixture_settings
@given(options=carousel_options(), steps=navigation_steps)
def test_position_matches_cursor(options, steps):
    for snapshot in run_steps(options, steps):
        position = snapshot.value["loaded"]["carousel"] if snapshot.matches("loaded") else None
        cursor = snapshot.context["cursor"]
        assert 0 <= cursor < options.total
        if position == "start":
            assert cursor == 0
        elif position == "end":
            assert cursor == options.total - 1
        elif position == "middle":
            assert 0 < cursor < options.total - 1


@settings(max_examples=60, deadline=None)
@given(total=st.integers(min_value=3, max_value=20), data=st.data())
def test_next_then_prev_restores_cursor(total, data):
    interpreter = Interpreter(base.create_machine(CarouselOptions(total=total)), clock=ManualClock())
    interpreter.start()
    for _ in range(data.draw(st.integers(min_value=1, max_value=total - 2), label="steps")):
        interpreter.send("next")
    before = interpreter.get_snapshot()
    assert before.value == "middle"

    interpreter.send("next")
    after = interpreter.send("prev")
    assert after.context["cursor"] == before.context["cursor"]
    assert after.value == "middle"


@settings(max_examples=30, deadline=None)
@given(total=st.integers(min_value=3, max_value=20))
def test_cyclic_prev_from_first_wraps_to_last(total):
    interpreter = Interpreter(final.create_machine(CarouselOptions(total=total, cyclic=True)), clock=ManualClock())
    snapshot = interpreter.start()
    assert snapshot.context["cursor"] == 0
    snapshot = interpreter.send("prev")
    assert snapshot.context["cursor"] == total - 1
    assert snapshot.value["loaded"]["carousel"] == "end"
    interpreter.stop()
