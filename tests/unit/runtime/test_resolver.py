"""Unit tests for transition selection and exit/entry set computation."""

import pytest

from carouselstate.core.errors import GuardEvaluationError
from carouselstate.core.event import Event
from carouselstate.core.machine import Machine
from carouselstate.runtime.resolver import TransitionResolver, document_order, exit_order


@pytest.fixture
def machine():
    return Machine(
        {
            "id": "m",
            "initial": "idle",
            "states": {
                "idle": {"on": {"LOAD": "loading", "SELF": "idle"}},
                "loading": {"on": {"DONE": "#loaded.player.paused"}},
                "loaded": {
                    "type": "parallel",
                    "on": {"RESET": "idle"},
                    "states": {
                        "player": {
                            "states": {
                                "playing": {"on": {"PAUSE": "paused", "RESET": {"target": "paused", "guard": "never"}}},
                                "paused": {"on": {"PLAY": "playing"}},
                            }
                        },
                        "nav": {
                            "on": {"HOME": ".first"},
                            "states": {
                                "first": {"on": {"NEXT": "second"}},
                                "second": {"on": {"NEXT": {"target": "first", "guard": "broken"}}},
                            },
                        },
                    },
                },
            },
        },
        {"guards": {"never": lambda ctx, e: False, "broken": lambda ctx, e: ctx["missing"]}},
    )


@pytest.fixture
def resolver(machine):
    return TransitionResolver(machine.root)


def node(machine, node_id):
    return machine.get_node(node_id)


def configuration(machine, *node_ids):
    nodes = {machine.root}
    for node_id in node_ids:
        nodes.add(machine.get_node(node_id))
    return nodes


def loaded_configuration(machine, player="playing", nav="first"):
    return configuration(
        machine, "loaded", "loaded.player", f"loaded.player.{player}", "loaded.nav", f"loaded.nav.{nav}"
    )


def test_initial_entry_set(machine, resolver):
    assert [n.id for n in resolver.initial_entry_set()] == ["m", "idle"]


def test_document_and_exit_order(machine):
    nodes = [node(machine, "loaded.nav.first"), node(machine, "loaded"), node(machine, "idle")]
    assert [n.id for n in document_order(nodes)] == ["idle", "loaded", "loaded.nav.first"]
    assert [n.id for n in exit_order(nodes)] == ["loaded.nav.first", "loaded", "idle"]


class TestSelection:
    def test_selects_from_active_leaf(self, machine, resolver):
        transitions = resolver.select(configuration(machine, "idle"), "LOAD", {}, Event("LOAD"))
        assert [t.source.id for t in transitions] == ["idle"]

    def test_unknown_event_selects_nothing(self, machine, resolver):
        assert resolver.select(configuration(machine, "idle"), "PLAY", {}, Event("PLAY")) == []

    def test_disabled_candidate_bubbles_to_ancestor(self, machine, resolver):
        transitions = resolver.select(loaded_configuration(machine), "RESET", {}, Event("RESET"))
        assert [t.source.id for t in transitions] == ["loaded"]

    def test_ancestor_transition_is_selected_once(self, machine, resolver):
        transitions = resolver.select(loaded_configuration(machine, player="paused"), "RESET", {}, Event("RESET"))
        assert len(transitions) == 1

    def test_regions_select_independently(self, machine, resolver):
        config = loaded_configuration(machine)
        assert [t.source.id for t in resolver.select(config, "PAUSE", {}, Event("PAUSE"))] == ["loaded.player.playing"]
        assert [t.source.id for t in resolver.select(config, "NEXT", {}, Event("NEXT"))] == ["loaded.nav.first"]

    def test_guard_errors_propagate(self, machine, resolver):
        with pytest.raises(GuardEvaluationError):
            resolver.select(loaded_configuration(machine, nav="second"), "NEXT", {}, Event("NEXT"))

    def test_descendant_source_preempts_ancestor(self, machine, resolver):
        leaf = node(machine, "loaded.player.playing").on["PAUSE"][0]
        ancestor = node(machine, "loaded").on["RESET"][0]
        kept = resolver.remove_conflicts([ancestor, leaf], loaded_configuration(machine))
        assert kept == [leaf]

    def test_earlier_transition_wins_between_unrelated_sources(self, machine, resolver):
        ancestor = node(machine, "loaded").on["RESET"][0]
        leaf = node(machine, "loaded.nav.first").on["NEXT"][0]
        kept = resolver.remove_conflicts([leaf, ancestor], loaded_configuration(machine))
        assert kept == [leaf]


class TestSets:
    def test_external_sibling_transition(self, machine, resolver):
        transition = node(machine, "idle").on["LOAD"][0]
        assert resolver.domain(transition) is machine.root
        assert [n.id for n in resolver.exit_set(transition, configuration(machine, "idle"))] == ["idle"]
        assert [n.id for n in resolver.entry_set([transition])] == ["loading"]

    def test_external_self_transition_exits_and_reenters(self, machine, resolver):
        transition = node(machine, "idle").on["SELF"][0]
        assert [n.id for n in resolver.exit_set(transition, configuration(machine, "idle"))] == ["idle"]
        assert [n.id for n in resolver.entry_set([transition])] == ["idle"]

    def test_internal_transition_keeps_source(self, machine, resolver):
        transition = node(machine, "loaded.nav").on["HOME"][0]
        assert transition.internal
        assert resolver.domain(transition) is node(machine, "loaded.nav")
        exits = resolver.exit_set(transition, loaded_configuration(machine, nav="second"))
        assert [n.id for n in exits] == ["loaded.nav.second"]
        assert [n.id for n in resolver.entry_set([transition])] == ["loaded.nav.first"]

    def test_deep_target_enters_sibling_regions(self, machine, resolver):
        transition = node(machine, "loading").on["DONE"][0]
        assert [n.id for n in resolver.entry_set([transition])] == [
            "loaded",
            "loaded.player",
            "loaded.player.paused",
            "loaded.nav",
            "loaded.nav.first",
        ]

    def test_leaving_parallel_exits_every_region_innermost_first(self, machine, resolver):
        transition = node(machine, "loaded").on["RESET"][0]
        exits = [n.id for n in resolver.exit_set(transition, loaded_configuration(machine))]
        assert exits[-1] == "loaded"
        assert set(exits) == {"loaded", "loaded.player", "loaded.player.playing", "loaded.nav", "loaded.nav.first"}
        assert exits.index("loaded.nav.first") < exits.index("loaded.nav")

    def test_targetless_transition_has_no_sets(self):
        machine = Machine({"states": {"a": {"on": {"TICK": {"actions": []}}}}})
        transition = machine.get_node("a").on["TICK"][0]
        local = TransitionResolver(machine.root)
        assert local.domain(transition) is None
        assert local.exit_set(transition, {machine.root, machine.get_node("a")}) == []
        assert local.entry_set([transition]) == []

    def test_final_state_detection(self):
        machine = Machine(
            {
                "type": "parallel",
                "states": {
                    "r1": {"states": {"a": {}, "a_done": {"type": "final"}}},
                    "r2": {"states": {"b": {}, "b_done": {"type": "final"}}},
                },
            }
        )
        resolver = TransitionResolver(machine.root)
        r1, r2 = machine.get_node("r1"), machine.get_node("r2")
        half = {machine.root, r1, machine.get_node("r1.a_done"), r2, machine.get_node("r2.b")}
        assert resolver.is_in_final_state(r1, half)
        assert not resolver.is_in_final_state(machine.root, half)
        complete = {machine.root, r1, machine.get_node("r1.a_done"), r2, machine.get_node("r2.b_done")}
        assert resolver.is_in_final_state(machine.root, complete)
