"""Unit tests for events, actions, guards, transitions and state nodes."""

import unittest

from carouselstate.core.actions import (
    AssignAction,
    EffectAction,
    RaiseAction,
    assign,
    effect,
    raise_event,
    to_action,
)
from carouselstate.core.errors import GuardEvaluationError, ServiceError
from carouselstate.core.event import (
    Event,
    EventKind,
    after_event_type,
    done_invoke_event_type,
    done_state_event_type,
    error_invoke_event_type,
    is_builtin_event_type,
    to_event,
)
from carouselstate.core.state import StateNode
from carouselstate.core.transition import Guard, Transition, to_guard
from carouselstate.core.types import StateType


class TestEvent(unittest.TestCase):
    """Test cases for the Event class."""

    def test_event_creation(self):
        event = Event("goTo", {"cursor": 4})
        self.assertEqual(event.type, "goTo")
        self.assertEqual(event.kind, EventKind.SIGNAL)
        self.assertEqual(event["cursor"], 4)
        self.assertEqual(event.get("missing", "default"), "default")

    def test_event_invalid_type(self):
        """Test that Event creation fails with an invalid type."""
        with self.assertRaises(ValueError):
            Event("")
        with self.assertRaises(ValueError):
            Event(None)

    def test_event_invalid_kind(self):
        with self.assertRaises(ValueError):
            Event("next", kind="signal")

    def test_event_data_is_copied(self):
        payload = {"cursor": 1}
        event = Event("goTo", payload)
        payload["cursor"] = 2
        event.data["cursor"] = 3
        self.assertEqual(event["cursor"], 1)

    def test_equality(self):
        self.assertEqual(Event("next"), Event("next"))
        self.assertNotEqual(Event("next"), Event("prev"))
        self.assertNotEqual(Event("next"), Event("next", kind=EventKind.TIME))

    def test_to_event(self):
        event = Event("next")
        self.assertIs(to_event(event), event)
        self.assertEqual(to_event("goTo", {"cursor": 2}), Event("goTo", {"cursor": 2}))
        with self.assertRaises(ValueError):
            to_event(event, {"cursor": 2})

    def test_builtin_event_names(self):
        self.assertEqual(after_event_type("auto_play", "loaded.autoPlay"), "after.auto_play.loaded.autoPlay")
        self.assertEqual(done_invoke_event_type("load_images"), "done.invoke.load_images")
        self.assertEqual(error_invoke_event_type("load_images"), "error.invoke.load_images")
        self.assertEqual(done_state_event_type("loaded"), "done.state.loaded")

        for event_type in ("init", "after.2000.idle", "done.invoke.x", "error.invoke.x", "done.state.x"):
            self.assertTrue(is_builtin_event_type(event_type), event_type)
        for event_type in ("next", "reload", "doneLoading"):
            self.assertFalse(is_builtin_event_type(event_type), event_type)


class TestActions(unittest.TestCase):
    """Test cases for assign, raise and effect actions."""

    def setUp(self):
        self.context = {"cursor": 2, "total": 5}
        self.event = Event("next")

    def test_assign_mapping(self):
        action = assign({"cursor": lambda ctx, e: ctx["cursor"] + 1, "label": "x"})
        result = action.apply(self.context, self.event)
        self.assertEqual(result, {"cursor": 3, "total": 5, "label": "x"})
        self.assertEqual(self.context, {"cursor": 2, "total": 5})

    def test_assign_function(self):
        action = AssignAction(lambda ctx, e: {"cursor": 0})
        self.assertEqual(action.apply(self.context, self.event)["cursor"], 0)

    def test_assign_function_returning_none(self):
        result = AssignAction(lambda ctx, e: None).apply(self.context, self.event)
        self.assertEqual(result, self.context)
        self.assertIsNot(result, self.context)

    def test_assign_function_returning_non_mapping(self):
        with self.assertRaises(TypeError):
            AssignAction(lambda ctx, e: 42).apply(self.context, self.event)

    def test_assign_invalid(self):
        with self.assertRaises(ValueError):
            AssignAction(42)

    def test_raise_event(self):
        action = raise_event("next")
        self.assertIsInstance(action, RaiseAction)
        self.assertEqual(action.name, "raise:next")
        self.assertEqual(action.resolve(self.context, self.event), Event("next"))

    def test_raise_event_from_function(self):
        action = RaiseAction(lambda ctx, e: "goTo")
        self.assertEqual(action.resolve(self.context, self.event).type, "goTo")

    def test_effect(self):
        calls = []
        action = effect(lambda ctx, e: calls.append((ctx["cursor"], e.type)))
        action.execute(self.context, self.event)
        self.assertEqual(calls, [(2, "next")])

    def test_to_action_renames(self):
        original = assign({"cursor": 0})
        named = to_action(original, "reset_context")
        self.assertEqual(named.name, "reset_context")
        self.assertEqual(original.name, "assign")
        self.assertEqual(named.apply(self.context, self.event)["cursor"], 0)

    def test_to_action_wraps_callables(self):
        action = to_action(lambda ctx, e: None, "scroll_to_item")
        self.assertIsInstance(action, EffectAction)
        self.assertEqual(action.name, "scroll_to_item")

    def test_to_action_rejects_other_values(self):
        with self.assertRaises(ValueError):
            to_action(3, "broken")


class TestGuard(unittest.TestCase):
    """Test cases for guard evaluation and composition."""

    def setUp(self):
        self.event = Event("next")
        self.is_cyclic = Guard(lambda ctx, e: ctx["cyclic"], "is_cyclic")
        self.is_first = Guard(lambda ctx, e: ctx["cursor"] == 1, "is_first_cursor")

    def test_evaluate(self):
        self.assertTrue(self.is_cyclic.evaluate({"cyclic": True}, self.event))
        self.assertFalse(self.is_cyclic.evaluate({"cyclic": False}, self.event))

    def test_errors_are_wrapped(self):
        with self.assertRaises(GuardEvaluationError) as raised:
            self.is_cyclic.evaluate({}, self.event)
        self.assertEqual(raised.exception.guard_name, "is_cyclic")
        self.assertIsInstance(raised.exception.cause, KeyError)

    def test_composition(self):
        context = {"cyclic": True, "cursor": 2}
        self.assertFalse((self.is_cyclic & self.is_first).evaluate(context, self.event))
        self.assertTrue((self.is_cyclic | self.is_first).evaluate(context, self.event))
        self.assertTrue((~self.is_first).evaluate(context, self.event))

    def test_to_guard(self):
        guard = to_guard(lambda ctx, e: True, "always")
        self.assertEqual(guard.name, "always")
        self.assertEqual(to_guard(self.is_cyclic, "renamed").name, "renamed")
        with self.assertRaises(ValueError):
            to_guard("not callable", "broken")


class TestTransition(unittest.TestCase):
    """Test cases for Transition."""

    def setUp(self):
        self.source = StateNode("middle", StateType.ATOMIC)

    def test_default_internal_flag(self):
        self.assertTrue(Transition(self.source, "next").internal)
        self.assertTrue(Transition(self.source, "reset", (".start",)).internal)
        self.assertFalse(Transition(self.source, "next", ("end",)).internal)
        self.assertFalse(Transition(self.source, "next", ("end",), internal=None).internal)
        self.assertTrue(Transition(self.source, "next", ("end",), internal=True).internal)

    def test_eventless(self):
        self.assertTrue(Transition(self.source, None).eventless)

    def test_invalid_parameters(self):
        with self.assertRaises(ValueError):
            Transition(None, "next")
        with self.assertRaises(ValueError):
            Transition(self.source, "")

    def test_targets_are_resolved_once(self):
        transition = Transition(self.source, "next", ("middle",))
        with self.assertRaises(RuntimeError):
            transition.targets
        transition.resolve_targets((self.source,))
        self.assertEqual(transition.targets, (self.source,))
        with self.assertRaises(RuntimeError):
            transition.resolve_targets((self.source,))

    def test_is_enabled(self):
        guarded = Transition(self.source, "next", guard=Guard(lambda ctx, e: ctx["ok"]))
        self.assertTrue(Transition(self.source, "next").is_enabled({}, Event("next")))
        self.assertFalse(guarded.is_enabled({"ok": False}, Event("next")))


class TestStateNode(unittest.TestCase):
    """Test cases for StateNode."""

    def test_invalid_keys(self):
        for key in ("", "a.b", "#a", None):
            with self.assertRaises(ValueError):
                StateNode(key, StateType.ATOMIC)

    def test_invalid_type(self):
        with self.assertRaises(ValueError):
            StateNode("a", "atomic")

    def test_ids_and_ancestry(self):
        root = StateNode("carousel", StateType.COMPOUND)
        loaded = StateNode("loaded", StateType.COMPOUND, root)
        start = StateNode("start", StateType.ATOMIC, loaded)

        self.assertEqual(root.id, "carousel")
        self.assertEqual(start.id, "loaded.start")
        self.assertEqual(start.depth, 2)
        self.assertEqual(list(start.ancestors()), [loaded, root])
        self.assertEqual(list(start.ancestors(upto=root)), [loaded])
        self.assertEqual(list(start.lineage()), [start, loaded, root])
        self.assertTrue(start.is_descendant_of(root))
        self.assertFalse(root.is_descendant_of(start))
        self.assertFalse(start.is_descendant_of(start))


class TestServiceError(unittest.TestCase):
    def test_message_includes_cause(self):
        error = ServiceError("load_images", IOError("offline"))
        self.assertEqual(error.service_id, "load_images")
        self.assertIn("load_images", str(error))
        self.assertIn("offline", str(error))


if __name__ == "__main__":
    unittest.main()
