"""
Transition selection and exit/entry set computation.

Architecture:
- Stateless helper over the compiled tree; all inputs are passed in
- Selection walks each active leaf towards the root in document order
- Domains, exit sets and entry sets follow run-to-completion statechart semantics

Design Patterns:
- Strategy Pattern: First-match selection per node with bubbling to ancestors
- Chain of Responsibility: Unhandled events bubble to parent nodes

Responsibilities:
1. Selection
   - First enabled candidate per node, in declaration order
   - Bubbling when no candidate is enabled
   - Conflict removal (descendant sources win, then document order)

2. Set Computation
   - Transition domain (least common compound ancestor or internal source)
   - Exit set, innermost first
   - Entry set, outermost first, with default children and parallel regions

3. Completion
   - Detection of final configurations for compound and parallel nodes

Dependencies:
- state.py: Tree navigation
- transition.py: Candidates and guards
"""

from typing import Iterable, List, Optional, Set

from carouselstate.core.event import Event
from carouselstate.core.state import StateNode
from carouselstate.core.transition import Transition
from carouselstate.core.types import Context


def document_order(nodes: Iterable[StateNode]) -> List[StateNode]:
    return sorted(nodes, key=lambda node: node.order)


def exit_order(nodes: Iterable[StateNode]) -> List[StateNode]:
    """Reverse document order: children before their parents."""
    return sorted(nodes, key=lambda node: node.order, reverse=True)


class TransitionResolver:
    """Computes which transitions fire and which nodes they exit and enter.

    Class Invariants:
    1. Never mutates the configuration it is given
    2. Returned transitions are in document order of their selecting leaf
    3. Exit sets never contain the transition domain
    """

    def __init__(self, root: StateNode) -> None:
        self._root = root

    @property
    def root(self) -> StateNode:
        return self._root

    def select(
        self,
        configuration: Set[StateNode],
        event_type: Optional[str],
        context: Context,
        event: Event,
    ) -> List[Transition]:
        """Select the transitions enabled by an event.

        Args:
            configuration: Active nodes
            event_type: Event type, or None for eventless transitions
            context: Extended state passed to guards
            event: Event passed to guards

        Returns:
            Conflict-free transitions to fire together

        Raises:
            GuardEvaluationError: If a guard raises
        """
        enabled: List[Transition] = []
        for leaf in document_order(node for node in configuration if node.is_atomic):
            for node in leaf.lineage():
                selected = self._first_enabled(node, event_type, context, event)
                if selected is not None:
                    if selected not in enabled:
                        enabled.append(selected)
                    break
        return self.remove_conflicts(enabled, configuration)

    @staticmethod
    def _first_enabled(
        node: StateNode, event_type: Optional[str], context: Context, event: Event
    ) -> Optional[Transition]:
        for transition in node.candidates(event_type):
            if transition.is_enabled(context, event):
                return transition
        return None

    def remove_conflicts(self, transitions: List[Transition], configuration: Set[StateNode]) -> List[Transition]:
        """Drop transitions whose exit sets overlap an earlier one.

        A transition whose source is a descendant of the other one's source
        preempts it; otherwise the earlier transition wins.
        """
        filtered: List[Transition] = []
        for candidate in transitions:
            candidate_exits = set(self.exit_set(candidate, configuration))
            preempted = False
            displaced = []
            for kept in filtered:
                if candidate_exits & set(self.exit_set(kept, configuration)):
                    if candidate.source.is_descendant_of(kept.source):
                        displaced.append(kept)
                    else:
                        preempted = True
                        break
            if not preempted:
                for kept in displaced:
                    filtered.remove(kept)
                filtered.append(candidate)
        return filtered

    def domain(self, transition: Transition) -> Optional[StateNode]:
        """Get the node whose descendants a transition exits and enters.

        Targetless transitions have no domain and change no configuration.
        """
        targets = transition.targets
        if not targets:
            return None
        source = transition.source
        if transition.internal and source.is_compound and all(t.is_descendant_of(source) for t in targets):
            return source
        return self.least_common_compound_ancestor([source, *targets])

    def least_common_compound_ancestor(self, nodes: List[StateNode]) -> StateNode:
        head, rest = nodes[0], nodes[1:]
        for ancestor in head.ancestors():
            if (ancestor.is_compound or ancestor.parent is None) and all(
                node.is_descendant_of(ancestor) for node in rest
            ):
                return ancestor
        return self._root

    def exit_set(self, transition: Transition, configuration: Set[StateNode]) -> List[StateNode]:
        """Active nodes left by a transition, innermost first."""
        domain = self.domain(transition)
        if domain is None:
            return []
        return exit_order(node for node in configuration if node.is_descendant_of(domain))

    def exit_set_of(self, transitions: List[Transition], configuration: Set[StateNode]) -> List[StateNode]:
        exits: Set[StateNode] = set()
        for transition in transitions:
            exits.update(self.exit_set(transition, configuration))
        return exit_order(exits)

    def entry_set(self, transitions: List[Transition]) -> List[StateNode]:
        """Nodes entered by a set of transitions, outermost first."""
        to_enter: Set[StateNode] = set()
        for transition in transitions:
            domain = self.domain(transition)
            if domain is None:
                continue
            for target in transition.targets:
                self._add_descendants(target, to_enter)
            for target in transition.targets:
                self._add_ancestors(target, domain, to_enter)
        return document_order(to_enter)

    def initial_entry_set(self) -> List[StateNode]:
        """Nodes entered when the machine starts, the root included."""
        to_enter: Set[StateNode] = set()
        self._add_descendants(self._root, to_enter)
        return document_order(to_enter)

    def _add_descendants(self, node: StateNode, to_enter: Set[StateNode]) -> None:
        to_enter.add(node)
        if node.is_compound:
            initial = node.initial
            self._add_descendants(initial, to_enter)
        elif node.is_parallel:
            for region in node.child_nodes:
                if not self._covers(region, to_enter):
                    self._add_descendants(region, to_enter)

    def _add_ancestors(self, node: StateNode, domain: StateNode, to_enter: Set[StateNode]) -> None:
        for ancestor in node.ancestors(upto=domain):
            to_enter.add(ancestor)
            if ancestor.is_parallel:
                for region in ancestor.child_nodes:
                    if not self._covers(region, to_enter):
                        self._add_descendants(region, to_enter)

    @staticmethod
    def _covers(region: StateNode, to_enter: Set[StateNode]) -> bool:
        return any(node is region or node.is_descendant_of(region) for node in to_enter)

    def is_in_final_state(self, node: StateNode, configuration: Set[StateNode]) -> bool:
        """Whether a compound or parallel node has completed."""
        if node.is_compound:
            return any(child.is_final and child in configuration for child in node.child_nodes)
        if node.is_parallel:
            return all(self.is_in_final_state(region, configuration) for region in node.child_nodes)
        return False
