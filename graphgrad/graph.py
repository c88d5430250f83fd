"""
Graph: Evaluation and Reverse-Mode Differentiation
==================================================

A Graph is the closure of a set of output nodes: every node they depend on,
sorted by identifier. Because a Session only lets a node reference older
nodes, ascending identifier order is a topological order.

Differentiation does not compute numbers. It walks the graph backwards and
builds NEW nodes expressing each gradient with the same primitives, then
returns a second Graph over those nodes:

    forward graph       x, w -> x*w -> (x*w - y)^2
    derivative graph    d(error)/dw = 1 * (e + e) * ... * x

Evaluating the derivative graph in the same session (whose cache already
holds the forward values) yields every gradient in one pass.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, List, MutableMapping, Sequence, Set, Tuple

import numpy as np

from .operation import Idx, Placeholder, describe, forward, gen_partial_derivs
from .session import Session

logger = logging.getLogger(__name__)


class Gradients(dict):
    """
    Derivative map: original node identifier -> identifier of its gradient node.

    Only nodes on a differentiable path to some output have an entry.
    Indexing any other node raises KeyError.
    """

    def __missing__(self, idx: Idx) -> Idx:
        raise KeyError(
            f"Node {idx} has no gradient: it has no differentiable path to any output"
        )


class Graph:
    """
    An immutable, topologically ordered closure over a set of outputs.

    Attributes:
        nodes: Every ancestor of the outputs (outputs included), ascending.
        outputs: The declared outputs, in order, duplicates allowed.

    Example:
        >>> s = Session()
        >>> a = s.constant(2.0)
        >>> b = s.constant(3.0)
        >>> c = s.multiply(a, b)
        >>> graph = Graph.construct([c], s)
        >>> s.eval_graph(graph)
        [6.0]
        >>> deriv_graph, grads = graph.generate_deriv_graph(s)
        >>> _ = s.eval_graph(deriv_graph)
        >>> s.get_value(grads[a])  # dc/da = b
        3.0
    """

    __slots__ = ('_nodes', '_members', '_outputs')

    def __init__(self, nodes: Sequence[Idx], outputs: Sequence[Idx]) -> None:
        self._nodes: Tuple[Idx, ...] = tuple(nodes)
        self._members: FrozenSet[Idx] = frozenset(self._nodes)
        self._outputs: Tuple[Idx, ...] = tuple(outputs)

    @classmethod
    def construct(cls, outputs: Iterable[Idx], session: Session) -> Graph:
        """
        Build the graph of everything ``outputs`` depend on.

        Visits ancestors depth-first from each output, then sorts the visited
        identifiers ascending to get a deterministic topological order.

        Args:
            outputs: Output node identifiers. Order and duplicates are kept.
            session: Session the identifiers belong to.

        Returns:
            New Graph.

        Raises:
            ValueError: If ``outputs`` is empty.
            IndexError: If an identifier is unknown to ``session``.
        """
        outputs = list(outputs)
        if not outputs:
            raise ValueError("A graph needs at least one output node")

        visited: Set[Idx] = set()
        # Iterative: derivative graphs can be deeper than the recursion limit.
        stack: List[Idx] = list(outputs)
        while stack:
            idx = stack.pop()
            if idx in visited:
                continue
            visited.add(idx)
            stack.extend(
                child for child in session.get_node(idx).inputs
                if child not in visited
            )

        nodes = sorted(visited)
        logger.debug(
            "Constructed graph: %d outputs, %d nodes", len(outputs), len(nodes)
        )
        return cls(nodes, outputs)

    @property
    def nodes(self) -> Tuple[Idx, ...]:
        return self._nodes

    @property
    def outputs(self) -> Tuple[Idx, ...]:
        return self._outputs

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, idx: object) -> bool:
        return idx in self._members

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, outputs={list(self._outputs)})"

    # =========================================================================
    # Forward Evaluation
    # =========================================================================

    def evaluate(
        self,
        values: MutableMapping[Idx, np.float32],
        session: Session
    ) -> List[float]:
        """
        Compute every node not already in ``values`` and return the outputs.

        Values already present are trusted and skipped. That is how fed
        placeholders and overrides win, and also why stale values survive
        until the cache is reset.

        Args:
            values: Value cache, updated in place.
            session: Session owning the nodes.

        Returns:
            Output values in declared order.

        Raises:
            KeyError: If a placeholder in the graph has no value.
        """
        computed = 0
        for idx in self._nodes:
            if idx in values:
                continue
            operation = session.get_node(idx).operation
            if isinstance(operation, Placeholder):
                raise KeyError(f"Placeholder {idx} was not fed a value")
            values[idx] = forward(operation, values)
            computed += 1

        logger.debug(
            "Evaluated graph: %d computed, %d cached",
            computed, len(self._nodes) - computed
        )
        return [float(values[idx]) for idx in self._outputs]

    # =========================================================================
    # Reverse-Mode Differentiation
    # =========================================================================

    def generate_deriv_graph(self, session: Session) -> Tuple[Graph, Gradients]:
        """
        Build the derivative graph of this graph's outputs.

        The algorithm:
        1. Seed every output with a Constant(1) gradient node. An output
           listed more than once gets one unit seed per occurrence, summed.
        2. Walk the nodes in descending identifier order. For each node that
           has a gradient and a differentiable operation, build
           ``Multiply(own_grad, local_deriv)`` for each input and add it into
           that input's gradient (``Sum(new, previous)`` if one exists).
        3. Every consumer of a node has a larger identifier, so a node's
           gradient is complete by the time the walk reaches it.

        The gradient computed is that of the sum of all outputs.

        Args:
            session: Session to build the new nodes in.

        Returns:
            ``(deriv_graph, grads)`` where ``grads`` maps each node on a
            differentiable path to its gradient node, and ``deriv_graph``
            has those gradient nodes as outputs, ordered by original node.
        """
        n_before = len(session)
        grads = Gradients()

        for idx in self._outputs:
            seed = session.one()
            grads[idx] = session.sum(seed, grads[idx]) if idx in grads else seed

        for idx in reversed(self._nodes):
            if idx not in grads:
                continue
            partials = gen_partial_derivs(session.get_node(idx).operation, session)
            if partials is None:
                continue
            own_grad = grads[idx]
            for input_idx, local_deriv in partials:
                contribution = session.multiply(own_grad, local_deriv)
                if input_idx in grads:
                    grads[input_idx] = session.sum(contribution, grads[input_idx])
                else:
                    grads[input_idx] = contribution

        logger.debug(
            "Generated derivative graph: %d gradients, %d new nodes",
            len(grads), len(session) - n_before
        )
        deriv_graph = Graph.construct(
            [grads[idx] for idx in sorted(grads)], session
        )
        return deriv_graph, grads


# =============================================================================
# Visualization
# =============================================================================

def draw_graph(session: Session, graph: Graph, format: str = 'text') -> str:
    """
    Render a graph for debugging.

    Args:
        session: Session owning the graph's nodes.
        graph: Graph to render.
        format: 'text' for a node listing, 'dot' for Graphviz DOT.

    Returns:
        String representation of the graph. Nodes with a cached value show
        it; others show ``-``.

    Raises:
        ValueError: If ``format`` is not 'text' or 'dot'.
    """
    def value_str(idx: Idx) -> str:
        if idx in session.values:
            return f'{float(session.values[idx]):.4f}'
        return '-'

    outputs = set(graph.outputs)

    if format == 'dot':
        lines = ['digraph G {', '  rankdir=LR;']
        for idx in graph.nodes:
            node = session.get_node(idx)
            shape = 'doublecircle' if idx in outputs else 'box'
            lines.append(
                f'  n{idx} [label="{idx}: {describe(node.operation)}\\n'
                f'value={value_str(idx)}", shape={shape}];'
            )
            for child in node.inputs:
                lines.append(f'  n{child} -> n{idx};')
        lines.append('}')
        return '\n'.join(lines)

    if format == 'text':
        lines = ['Computation Graph:', '=' * 50]
        for idx in graph.nodes:
            node = session.get_node(idx)
            marker = '*' if idx in outputs else ' '
            lines.append(
                f'{marker}{idx:>6}: {describe(node.operation):<24} '
                f'value={value_str(idx):>12}'
            )
        return '\n'.join(lines)

    raise ValueError(f"Unknown format {format!r}; expected 'text' or 'dot'")
