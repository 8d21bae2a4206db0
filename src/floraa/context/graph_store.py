"""
Relationship graph for project memory.

Projects link to the technologies, features, patterns, team members and
decisions recorded in their context; decisions link to related decisions.
"""

from typing import Dict, List, Optional, Any
import networkx as nx

from floraa.core.logging import get_logger
from floraa.context.models import ProjectContext, DecisionMemory

logger = get_logger(__name__)

# Edge relations
USES_TECH = "uses_tech"
USES_PATTERN = "uses_pattern"
HAS_FEATURE = "has_feature"
HAS_MEMBER = "has_member"
HAS_DECISION = "has_decision"
RELATED_TO = "related_to"

# Edges rebuilt every time a project context is stored
_CONTEXT_RELATIONS = {USES_TECH, USES_PATTERN, HAS_FEATURE, HAS_MEMBER}


def _node(kind: str, key: str) -> str:
    return f"{kind}:{key}"


class GraphStore:
    """In-memory directed graph of project relationships."""

    def __init__(self):
        self.graph = nx.DiGraph()

    def _ensure_node(self, node_id: str, kind: str, label: str, **attrs) -> None:
        if node_id in self.graph:
            self.graph.nodes[node_id].update(attrs)
        else:
            self.graph.add_node(node_id, kind=kind, label=label, **attrs)

    def store_project_relationships(self, context: ProjectContext) -> None:
        """Replace the context-derived edges of a project."""
        project_node = _node("project", context.id)
        self._ensure_node(project_node, "project", context.id, name=context.name)

        stale = [
            (u, v) for u, v, relation in self.graph.out_edges(project_node, data="relation")
            if relation in _CONTEXT_RELATIONS
        ]
        self.graph.remove_edges_from(stale)

        stack = context.tech_stack
        techs = (stack.frontend + stack.backend + stack.database
                 + stack.infrastructure + stack.tools)
        for extra in (context.architecture.framework, context.architecture.database):
            if extra:
                techs.append(extra)
        for tech in dict.fromkeys(techs):
            tech_node = _node("tech", tech)
            self._ensure_node(tech_node, "tech", tech)
            self.graph.add_edge(project_node, tech_node, relation=USES_TECH)

        for pattern in context.architecture.patterns:
            pattern_node = _node("pattern", pattern)
            self._ensure_node(pattern_node, "pattern", pattern)
            self.graph.add_edge(project_node, pattern_node, relation=USES_PATTERN)

        dev = context.development
        for status, features in (("current", dev.current_features),
                                 ("completed", dev.completed_features),
                                 ("next", dev.next_features)):
            for feature in features:
                feature_node = _node("feature", f"{context.id}:{feature}")
                self._ensure_node(feature_node, "feature", feature, status=status)
                self.graph.add_edge(project_node, feature_node, relation=HAS_FEATURE)

        for member in context.team.members:
            member_node = _node("member", member.id)
            self._ensure_node(member_node, "member", member.name, role=member.role)
            self.graph.add_edge(project_node, member_node, relation=HAS_MEMBER)

        logger.debug(f"Stored relationships for project {context.id}: "
                     f"{self.graph.out_degree(project_node)} edges")

    def add_decision(self, decision: DecisionMemory) -> None:
        """Link a decision to its project and to its related decisions."""
        project_node = _node("project", decision.project_id)
        self._ensure_node(project_node, "project", decision.project_id)

        decision_node = _node("decision", decision.id)
        self._ensure_node(decision_node, "decision", decision.decision, status=decision.status)
        self.graph.add_edge(project_node, decision_node, relation=HAS_DECISION)

        for related_id in decision.related_decisions:
            related_node = _node("decision", related_id)
            if related_node not in self.graph:
                self.graph.add_node(related_node, kind="decision", label=related_id)
            self.graph.add_edge(decision_node, related_node, relation=RELATED_TO)

    def related_decisions(self, decision_id: str, depth: int = 1) -> List[str]:
        """Ids of decisions within ``depth`` related-to hops, in either direction."""
        decision_node = _node("decision", decision_id)
        if decision_node not in self.graph:
            return []

        decision_graph = nx.Graph()
        decision_graph.add_node(decision_node)
        decision_graph.add_edges_from(
            (u, v) for u, v, relation in self.graph.edges(data="relation")
            if relation == RELATED_TO
        )
        reachable = nx.single_source_shortest_path_length(decision_graph, decision_node, cutoff=depth)
        return sorted(node.split(":", 1)[1] for node in reachable if node != decision_node)

    def neighbors(self, project_id: str, relation: Optional[str] = None) -> List[Dict[str, Any]]:
        """Nodes the project points at, optionally restricted to one relation."""
        project_node = _node("project", project_id)
        if project_node not in self.graph:
            return []

        result = []
        for _, target, edge_relation in self.graph.out_edges(project_node, data="relation"):
            if relation is None or edge_relation == relation:
                result.append({"id": target, "relation": edge_relation, **self.graph.nodes[target]})
        return result

    def project_decisions(self, project_id: str) -> List[str]:
        return [n["id"].split(":", 1)[1] for n in self.neighbors(project_id, HAS_DECISION)]

    def get_stats(self) -> Dict[str, Any]:
        kinds: Dict[str, int] = {}
        for _, kind in self.graph.nodes(data="kind"):
            kinds[kind] = kinds.get(kind, 0) + 1
        return {
            "nodes": self.graph.number_of_nodes(),
            "edges": self.graph.number_of_edges(),
            "by_kind": kinds,
        }
