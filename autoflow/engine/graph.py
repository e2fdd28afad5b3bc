"""
Graph view over an Automation.

Nodes stay in the automation's ordered collection; successors are resolved
by id lookup on every step. The graph is read-only and shared by every run
of the automation.
"""

from typing import Dict, List, Optional, Set, TYPE_CHECKING

from autoflow.engine.conditions import ConditionEvaluator
from autoflow.engine.delays import validate_delay_params
from autoflow.engine.errors import AutomationLoadError
from autoflow.engine.models import Automation, Node, CONDITION, DELAY, END

if TYPE_CHECKING:
    from autoflow.actions.registry import ActionRegistry


class AutomationGraph:
    """
    Index of an automation's nodes by id.

    Attributes:
        automation: The automation document
        nodes: Dict of node id -> Node
    """

    def __init__(self, automation: Automation):
        self.automation = automation
        self.nodes: Dict[str, Node] = {node.id: node for node in automation.nodes}

    @classmethod
    def load(
        cls,
        automation: Automation,
        registry: "ActionRegistry",
        evaluator: Optional[ConditionEvaluator] = None,
        check_cycles: bool = False,
    ) -> "AutomationGraph":
        """
        Build and validate a graph.

        Raises:
            AutomationLoadError: If validation finds any error
        """
        graph = cls(automation)
        errors = graph.validate(registry, evaluator, check_cycles=check_cycles)
        if errors:
            raise AutomationLoadError(automation.id, errors)
        return graph

    @property
    def automation_id(self) -> str:
        return self.automation.id

    @property
    def entry_node_id(self) -> Optional[str]:
        return self.automation.entry_node_id

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def max_visits(self, factor: int) -> int:
        """Visit budget for one run."""
        return max(1, len(self.nodes) * max(1, factor))

    def validate(
        self,
        registry: "ActionRegistry",
        evaluator: Optional[ConditionEvaluator] = None,
        check_cycles: bool = False,
    ) -> List[str]:
        """
        Validate the graph structure and node parameters.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        evaluator = evaluator or ConditionEvaluator()

        if not self.nodes:
            errors.append("Automation must have at least one node")
            return errors

        entry = self.entry_node_id
        if entry not in self.nodes:
            errors.append(f"Entry node '{entry}' not found in nodes")

        for node in self.automation.nodes:
            for target in node.successors():
                if target not in self.nodes:
                    errors.append(f"Node '{node.id}' references missing node '{target}'")

            if node.type == CONDITION:
                if node.next:
                    errors.append(f"Condition node '{node.id}' must route through 'branches', not 'next'")
                errors.extend(
                    f"Condition node '{node.id}': {e}" for e in evaluator.validate(node.params)
                )
            elif node.branches is not None and node.branches.targets():
                errors.append(f"Only condition nodes may have 'branches' (node '{node.id}')")

            if node.type == DELAY:
                errors.extend(
                    f"Delay node '{node.id}': {e}" for e in validate_delay_params(node.params)
                )
            elif node.is_action:
                errors.extend(
                    f"Node '{node.id}': {e}"
                    for e in registry.validate_params(node.action_type, node.params)
                )

        if check_cycles:
            cycle = self.find_cycle()
            if cycle:
                errors.append(f"Cycle detected: {' -> '.join(cycle)}")

        return errors

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a list of node ids, or None if the graph is acyclic."""
        visiting: Set[str] = set()
        done: Set[str] = set()
        path: List[str] = []

        def visit(node_id: str) -> Optional[List[str]]:
            visiting.add(node_id)
            path.append(node_id)
            for target in self.nodes[node_id].successors():
                if target not in self.nodes or target in done:
                    continue
                if target in visiting:
                    return path[path.index(target):] + [target]
                found = visit(target)
                if found:
                    return found
            visiting.discard(node_id)
            done.add(node_id)
            path.pop()
            return None

        for node_id in self.nodes:
            if node_id not in done:
                found = visit(node_id)
                if found:
                    return found
        return None

    def reachable_from(self, node_id: Optional[str] = None) -> Set[str]:
        """All node ids reachable from the given node (default: entry)."""
        start = node_id or self.entry_node_id
        reachable = set()
        to_visit = [start] if start else []

        while to_visit:
            current = to_visit.pop()
            if current in reachable or current not in self.nodes:
                continue
            reachable.add(current)
            to_visit.extend(self.nodes[current].successors())

        return reachable

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]
        lines.append(f'    __trigger__(("{self.automation.trigger.type}"))')

        for node in self.automation.nodes:
            label = (node.label or node.id).replace('"', "'")
            if node.type == CONDITION:
                lines.append(f'    {node.id}{{"{label}"}}')
            elif node.type == END:
                lines.append(f'    {node.id}(["{label}"])')
            else:
                lines.append(f'    {node.id}["{label}"]')

        if self.entry_node_id in self.nodes:
            lines.append(f"    __trigger__ --> {self.entry_node_id}")

        for node in self.automation.nodes:
            if node.branches is not None:
                if node.branches.true:
                    lines.append(f"    {node.id} -->|true| {node.branches.true}")
                if node.branches.false:
                    lines.append(f"    {node.id} -->|false| {node.branches.false}")
            elif node.next:
                lines.append(f"    {node.id} --> {node.next}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"AutomationGraph(automation='{self.automation.name}', "
            f"nodes={list(self.nodes.keys())}, entry='{self.entry_node_id}')"
        )
