"""
Operations: The Primitive Node Kinds
====================================

Every node in a graphgrad arena carries exactly one Operation. The set is
closed: constants, placeholders, and five scalar arithmetic primitives. Every
other operation (subtraction, division, powers, activations) is composed out
of these at construction time, so the reverse pass only ever needs the local
derivative rules written down here.

Each primitive has two rules:

    forward             how to compute its value from its inputs' values
    gen_partial_derivs  how to build NEW nodes holding d(self)/d(input)

The derivative rule builds graph nodes rather than numbers. Differentiating
a graph therefore produces another graph, which can itself be evaluated (or
differentiated again).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

if TYPE_CHECKING:
    from .session import Session


# Identifiers are plain ints handed out by a Session, in creation order.
Idx = int

# Scalars accepted anywhere a number is expected
Numeric = Union[int, float, np.floating]


# =============================================================================
# Variants
# =============================================================================

@dataclass(frozen=True)
class Constant:
    """A fixed scalar baked into the graph."""

    value: np.float32


@dataclass(frozen=True)
class Placeholder:
    """A leaf whose value is fed in at evaluation time."""


@dataclass(frozen=True)
class Sum:
    a: Idx
    b: Idx


@dataclass(frozen=True)
class Multiply:
    a: Idx
    b: Idx


@dataclass(frozen=True)
class Negative:
    a: Idx


@dataclass(frozen=True)
class Exponential:
    a: Idx


@dataclass(frozen=True)
class Ln:
    a: Idx


Operation = Union[Constant, Placeholder, Sum, Multiply, Negative, Exponential, Ln]

_BINARY = (Sum, Multiply)
_UNARY = (Negative, Exponential, Ln)


def _unknown(op: object) -> TypeError:
    return TypeError(f"Unknown operation: {op!r}")


# =============================================================================
# Rules
# =============================================================================

def input_nodes(op: Operation) -> Tuple[Idx, ...]:
    """Return the identifiers this operation reads, in declaration order."""
    if isinstance(op, _BINARY):
        return (op.a, op.b)
    if isinstance(op, _UNARY):
        return (op.a,)
    if isinstance(op, (Constant, Placeholder)):
        return ()
    raise _unknown(op)


def forward(op: Operation, values: Mapping[Idx, np.float32]) -> np.float32:
    """
    Compute the value of a node from the values of its inputs.

    Inputs are looked up in ``values``; a missing input raises KeyError,
    which only happens if the caller walks nodes out of topological order.

    No domain checks: ln(0) is -inf, ln(-1) is nan, exp overflow is inf.
    Those propagate through everything downstream.

    Args:
        op: The operation to evaluate.
        values: Already-computed values keyed by node identifier.

    Returns:
        The node's value as a float32.

    Raises:
        KeyError: If an input has no value, or if ``op`` is a Placeholder
            (placeholders only ever get their value from a feed).
    """
    with np.errstate(all='ignore'):
        if isinstance(op, Constant):
            return op.value
        if isinstance(op, Sum):
            return np.float32(values[op.a] + values[op.b])
        if isinstance(op, Multiply):
            return np.float32(values[op.a] * values[op.b])
        if isinstance(op, Negative):
            return np.float32(-values[op.a])
        if isinstance(op, Exponential):
            return np.float32(np.exp(values[op.a]))
        if isinstance(op, Ln):
            return np.float32(np.log(values[op.a]))
        if isinstance(op, Placeholder):
            raise KeyError("Placeholder has no intrinsic value; feed one")
    raise _unknown(op)


def gen_partial_derivs(
    op: Operation,
    session: Session
) -> Optional[List[Tuple[Idx, Idx]]]:
    """
    Build the local partial derivatives of ``op`` as new nodes in ``session``.

    Local derivatives:
        Sum(a, b)       d/da = 1,      d/db = 1
        Multiply(a, b)  d/da = b,      d/db = a
        Negative(a)     d/da = -1
        Exponential(a)  d/da = exp(a)
        Ln(a)           d/da = 1 / a

    Multiply reuses its own inputs as the derivative nodes, so no new node is
    created for it. ``Multiply(x, x)`` yields two pairs for ``x``; the caller
    must accumulate both.

    Args:
        op: The operation to differentiate.
        session: Arena the derivative nodes are created in.

    Returns:
        List of ``(input_idx, local_deriv_idx)`` pairs, or None for
        Constant and Placeholder, which stop the backward pass.
    """
    if isinstance(op, Sum):
        return [(op.a, session.one()), (op.b, session.one())]
    if isinstance(op, Multiply):
        return [(op.a, op.b), (op.b, op.a)]
    if isinstance(op, Negative):
        return [(op.a, session.constant(-1.0))]
    if isinstance(op, Exponential):
        return [(op.a, session.exp(op.a))]
    if isinstance(op, Ln):
        one = session.one()
        return [(op.a, session.divide(one, op.a))]
    if isinstance(op, (Constant, Placeholder)):
        return None
    raise _unknown(op)


def describe(op: Operation) -> str:
    """Short label used when rendering graphs, e.g. ``*(3, 4)``."""
    if isinstance(op, Constant):
        return f'const({float(op.value):g})'
    if isinstance(op, Placeholder):
        return 'placeholder'
    symbols: Dict[type, str] = {
        Sum: '+',
        Multiply: '*',
        Negative: 'neg',
        Exponential: 'exp',
        Ln: 'ln',
    }
    args = ', '.join(str(i) for i in input_nodes(op))
    return f'{symbols[type(op)]}({args})'
