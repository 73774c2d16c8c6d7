"""
Dependency graph between formula fields.

Nodes are (workstream key, field id) pairs. A bare reference resolves to the
field of that name in the formula's own workstream, falling back to the first
workstream (in template order) that defines it. A qualified reference
`workstream_key.field_id` names the workstream explicitly.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from .errors import CircularFormulaError
from .formula import parse_formula
from .models import FieldSchema

FieldKey = Tuple[str, str]


class HasFields(Protocol):
    """ Anything shaped like a workstream: a template schema or an instance row. """
    key: str
    fields: Tuple[FieldSchema, ...]


def format_key(key: FieldKey) -> str:
    return f"{key[0]}.{key[1]}"


def resolve_reference(workstreams: Sequence[HasFields], owner: HasFields, reference: str) -> Optional[FieldKey]:
    """ Map a reference written in `owner`'s formula to the field it names, or None. """
    if "." in reference:
        ws_key, field_id = reference.split(".", 1)
        target = next((ws for ws in workstreams if ws.key == ws_key), None)
        if target is not None and any(f.id == field_id for f in target.fields):
            return (ws_key, field_id)
        return None

    if any(f.id == reference for f in owner.fields):
        return (owner.key, reference)
    for ws in workstreams:
        if any(f.id == reference for f in ws.fields):
            return (ws.key, reference)
    return None


@dataclass
class DependencyGraph:
    # formula field -> fields its expression reads
    dependencies: Dict[FieldKey, List[FieldKey]] = field(default_factory=dict)
    # formula field -> references that name no field at all
    unresolved: Dict[FieldKey, List[str]] = field(default_factory=dict)

    @property
    def formulas(self) -> List[FieldKey]:
        return list(self.dependencies)

    def dependents(self) -> Dict[FieldKey, Set[FieldKey]]:
        reverse: Dict[FieldKey, Set[FieldKey]] = {}
        for formula, deps in self.dependencies.items():
            for dep in deps:
                reverse.setdefault(dep, set()).add(formula)
        return reverse

    def affected_by(self, changed: Iterable[FieldKey]) -> Set[FieldKey]:
        """ Every formula that reads any of `changed`, directly or through other formulas. """
        reverse = self.dependents()
        affected: Set[FieldKey] = set()
        queue = list(changed)
        while queue:
            current = queue.pop(0)
            for formula in reverse.get(current, ()):
                if formula not in affected:
                    affected.add(formula)
                    queue.append(formula)
        return affected

    def topological_order(self) -> List[FieldKey]:
        """
        Formula fields ordered so each comes after the formulas it reads (Kahn).
        Raises CircularFormulaError naming one cycle if there is any.
        """
        formulas = self.dependencies
        indegree = {key: 0 for key in formulas}
        adjacency: Dict[FieldKey, List[FieldKey]] = {key: [] for key in formulas}
        for key, deps in formulas.items():
            for dep in dict.fromkeys(deps):
                if dep in formulas:
                    adjacency[dep].append(key)
                    indegree[key] += 1

        queue = [key for key, deg in indegree.items() if deg == 0]
        order: List[FieldKey] = []
        while queue:
            current = queue.pop(0)
            order.append(current)
            for neighbor in adjacency[current]:
                indegree[neighbor] -= 1
                if indegree[neighbor] == 0:
                    queue.append(neighbor)

        if len(order) != len(formulas):
            remaining = {key for key, deg in indegree.items() if deg > 0}
            raise CircularFormulaError([format_key(k) for k in self._find_cycle(remaining)])
        return order

    def _find_cycle(self, remaining: Set[FieldKey]) -> List[FieldKey]:
        # Walk dependency edges inside the unsorted remainder until a node repeats
        start = min(remaining)
        path: List[FieldKey] = []
        seen: Dict[FieldKey, int] = {}
        current = start
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = next(dep for dep in self.dependencies[current] if dep in remaining)
        cycle = path[seen[current]:]
        return cycle + [cycle[0]]


def build_dependency_graph(workstreams: Sequence[HasFields]) -> DependencyGraph:
    graph = DependencyGraph()
    for ws in workstreams:
        for f in ws.fields:
            if not f.is_formula:
                continue
            key = (ws.key, f.id)
            deps: List[FieldKey] = []
            missing: List[str] = []
            for reference in parse_formula(f.formula or "").references:
                target = resolve_reference(workstreams, ws, reference)
                if target is None:
                    missing.append(reference)
                else:
                    deps.append(target)
            graph.dependencies[key] = deps
            if missing:
                graph.unresolved[key] = missing
    return graph
