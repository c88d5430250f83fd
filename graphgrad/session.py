"""
Session: The Node Arena
=======================

A Session owns every node ever built and the cache of computed values.

Nodes are append-only. Each one gets the next integer identifier, and an
operation can only reference identifiers that already exist, so a node's
inputs always have smaller identifiers than the node itself. Sorting by
identifier is therefore always a valid evaluation order, and cycles cannot
be built.

Example:
    >>> from graphgrad import Graph, Session
    >>> s = Session()
    >>> x = s.constant(2.0)
    >>> w = s.placeholder()
    >>> loss = s.square(s.subtract(s.multiply(x, w), s.constant(8.0)))
    >>> graph = Graph.construct([loss], s)
    >>> s.eval_graph(graph, {w: 3.0})
    [4.0]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .operation import (
    Constant,
    Exponential,
    Idx,
    Ln,
    Multiply,
    Negative,
    Numeric,
    Operation,
    Placeholder,
    Sum,
    input_nodes,
)

if TYPE_CHECKING:
    from .graph import Graph

logger = logging.getLogger(__name__)


def _as_float32(value: Numeric, what: str) -> np.float32:
    # bool is an int subclass but never a meaningful scalar here
    if isinstance(value, bool) or not isinstance(value, (int, float, np.floating)):
        raise TypeError(
            f"{what} must be numeric, got {type(value).__name__}"
        )
    return np.float32(value)


@dataclass(frozen=True)
class Node:
    """An identifier paired with its operation. Immutable."""

    idx: Idx
    operation: Operation

    @property
    def inputs(self) -> Tuple[Idx, ...]:
        return input_nodes(self.operation)


class Session:
    """
    Append-only node arena plus a persistent value cache.

    The cache survives across ``eval_graph`` calls; values are reused purely
    because they are present. Whenever fed values change, call ``reset()``
    before evaluating again or dependents will keep their old values.

    Attributes:
        values: Cached float32 value per evaluated node identifier.
    """

    def __init__(self) -> None:
        self._nodes: List[Node] = []
        self.values: Dict[Idx, np.float32] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Session(nodes={len(self._nodes)}, cached={len(self.values)})"

    # =========================================================================
    # Arena
    # =========================================================================

    def add_node(self, operation: Operation) -> Idx:
        """Append a node and return its fresh identifier."""
        idx = len(self._nodes)
        self._nodes.append(Node(idx, operation))
        return idx

    def get_node(self, idx: Idx) -> Node:
        """
        Look up a node.

        Raises:
            IndexError: If ``idx`` was never issued by this session.
        """
        if idx < 0 or idx >= len(self._nodes):
            raise IndexError(f"No node {idx} (session has {len(self._nodes)})")
        return self._nodes[idx]

    # =========================================================================
    # Primitive Builders
    # =========================================================================

    def constant(self, value: Numeric) -> Idx:
        return self.add_node(Constant(_as_float32(value, "Constant value")))

    def one(self) -> Idx:
        return self.constant(1.0)

    def placeholder(self) -> Idx:
        return self.add_node(Placeholder())

    def sum(self, a: Idx, b: Idx) -> Idx:
        return self.add_node(Sum(a, b))

    def multiply(self, a: Idx, b: Idx) -> Idx:
        return self.add_node(Multiply(a, b))

    def negative(self, a: Idx) -> Idx:
        return self.add_node(Negative(a))

    def exp(self, a: Idx) -> Idx:
        return self.add_node(Exponential(a))

    def ln(self, a: Idx) -> Idx:
        return self.add_node(Ln(a))

    # =========================================================================
    # Composite Builders
    # =========================================================================
    # Composites only chain primitive builders. The reverse pass never sees
    # them, just the primitives they expand into.

    def subtract(self, a: Idx, b: Idx) -> Idx:
        """a - b = a + (-b)"""
        return self.sum(a, self.negative(b))

    def square(self, a: Idx) -> Idx:
        """
        a^2 = a * a

        Not routed through ``pow``: ln(a) is undefined for negative a, while
        a * a is fine everywhere.
        """
        return self.multiply(a, a)

    def pow(self, a: Idx, b: Idx) -> Idx:
        """a^b = exp(ln(a) * b). Only meaningful for a > 0."""
        return self.exp(self.multiply(self.ln(a), b))

    def divide(self, a: Idx, b: Idx) -> Idx:
        """a / b = a * b^(-1)"""
        neg_one = self.constant(-1.0)
        return self.multiply(a, self.pow(b, neg_one))

    def sigmoid(self, a: Idx) -> Idx:
        """
        sigmoid(a) = 1 / (1 + exp(-a))

        The value saturates to 0 and 1. The gradient is NaN for a below about
        -88.7: exp(-a) overflows float32 and the reverse pass multiplies a zero
        gradient by that inf.
        """
        denom = self.sum(self.one(), self.exp(self.negative(a)))
        return self.divide(self.one(), denom)

    def tanh(self, a: Idx) -> Idx:
        """
        tanh(a) = 2 * sigmoid(2a) - 1

        The value saturates to -1 and 1. Like ``sigmoid``, the gradient is NaN
        once exp(-2a) overflows, for a below about -44.4.
        """
        doubled = self.multiply(self.constant(2.0), a)
        return self.subtract(
            self.multiply(self.constant(2.0), self.sigmoid(doubled)),
            self.one()
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def reset(self) -> None:
        """Drop every cached value. Nodes are kept."""
        logger.debug("Reset value cache: dropped %d values", len(self.values))
        self.values.clear()

    def get_value(self, idx: Idx) -> float:
        """
        Return the cached value of a node.

        Raises:
            KeyError: If the node has not been evaluated since the last reset.
        """
        if idx not in self.values:
            raise KeyError(f"Node {idx} has no value; evaluate a graph containing it first")
        return float(self.values[idx])

    def eval_graph(
        self,
        graph: Graph,
        feed: Optional[Mapping[Idx, Numeric]] = None
    ) -> List[float]:
        """
        Evaluate ``graph`` against this session's cache.

        Feed entries are written into the cache first and overwrite whatever
        was cached for those nodes. Nodes downstream of a fed node are NOT
        invalidated; ``reset()`` between evaluations with new feeds.

        Args:
            graph: Graph built over this session.
            feed: Values for placeholders (or overrides for any node).

        Returns:
            The graph's output values, in declared order.
        """
        if feed:
            for idx, value in feed.items():
                self.get_node(idx)
                self.values[idx] = _as_float32(value, f"Feed value for node {idx}")
        return graph.evaluate(self.values, self)
