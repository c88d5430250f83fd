"""
Neural Network Helpers
======================

Small building blocks that wire up networks through the Session builder API.

Weights and biases are placeholders. Their current numbers live outside the
graph in a ``values`` dict keyed by placeholder identifier, which is fed to
``Session.eval_graph`` on every step. That way the loss graph and its
derivative graph are built once and re-evaluated for as long as training
runs:

    >>> from graphgrad import Graph, Session
    >>> s = Session()
    >>> model = MLP(s, 2, [4, 1])
    >>> x = [s.constant(1.0), s.constant(2.0)]
    >>> loss = mse_loss(s, [model(x)], [1.0])
    >>> graph = Graph.construct([loss], s)
    >>> deriv_graph, grads = graph.generate_deriv_graph(s)
    >>> opt = SGD(model.values, lr=0.1)
    >>> for _ in range(10):
    ...     s.eval_graph(graph, model.values)
    ...     s.eval_graph(deriv_graph)
    ...     opt.step(s, grads)
    ...     s.reset()
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence, Union

from .graph import Gradients
from .operation import Idx
from .session import Session

ACTIVATIONS = ('tanh', 'sigmoid')


class Module:
    """
    Base class for network components.

    Attributes:
        values: Current value of every parameter placeholder, shared by a
            module and all of its children.
    """

    values: Dict[Idx, float]

    def parameters(self) -> List[Idx]:
        """Return the placeholder identifiers of all trainable parameters."""
        return []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Neuron(Module):
    """
    A single neuron: activation(sum(w_i * x_i) + b).

    Example:
        >>> n = Neuron(s, 3)
        >>> out = n([s.constant(1.0), s.constant(2.0), s.constant(3.0)])
    """

    def __init__(
        self,
        session: Session,
        nin: int,
        nonlin: bool = True,
        activation: str = 'tanh',
        values: Optional[Dict[Idx, float]] = None
    ) -> None:
        """
        Create the neuron's parameter placeholders.

        Args:
            session: Session to build nodes in.
            nin: Number of inputs.
            nonlin: Whether to apply the activation.
            activation: 'tanh' or 'sigmoid'.
            values: Parameter dict to register initial values in. A new one
                is created when omitted.

        Raises:
            ValueError: If ``activation`` is unknown.
        """
        if activation not in ACTIVATIONS:
            raise ValueError(
                f"Unknown activation {activation!r}; expected one of {ACTIVATIONS}"
            )
        self.session = session
        self.nonlin = nonlin
        self.activation = activation
        self.values = values if values is not None else {}

        scale = (2.0 / nin) ** 0.5
        self.w: List[Idx] = [session.placeholder() for _ in range(nin)]
        self.b: Idx = session.placeholder()
        for wi in self.w:
            self.values[wi] = random.uniform(-1, 1) * scale
        self.values[self.b] = 0.0

    def __call__(self, x: Sequence[Idx]) -> Idx:
        """
        Build the neuron's output node.

        Raises:
            ValueError: If ``x`` doesn't have one entry per weight.
        """
        if len(x) != len(self.w):
            raise ValueError(
                f"Expected {len(self.w)} inputs, got {len(x)}"
            )

        s = self.session
        act = self.b
        for wi, xi in zip(self.w, x):
            act = s.sum(act, s.multiply(wi, xi))

        if not self.nonlin:
            return act
        if self.activation == 'sigmoid':
            return s.sigmoid(act)
        return s.tanh(act)

    def parameters(self) -> List[Idx]:
        return self.w + [self.b]

    def __repr__(self) -> str:
        act = self.activation if self.nonlin else 'Linear'
        return f"Neuron({len(self.w)}, {act})"


class Layer(Module):
    """A fully connected layer: ``nout`` neurons reading the same inputs."""

    def __init__(
        self,
        session: Session,
        nin: int,
        nout: int,
        nonlin: bool = True,
        activation: str = 'tanh',
        values: Optional[Dict[Idx, float]] = None
    ) -> None:
        self.values = values if values is not None else {}
        self.neurons: List[Neuron] = [
            Neuron(session, nin, nonlin=nonlin, activation=activation, values=self.values)
            for _ in range(nout)
        ]

    def __call__(self, x: Sequence[Idx]) -> List[Idx]:
        return [n(x) for n in self.neurons]

    def parameters(self) -> List[Idx]:
        return [p for n in self.neurons for p in n.parameters()]

    def __repr__(self) -> str:
        return f"Layer({len(self.neurons[0].w)} -> {len(self.neurons)})"


class MLP(Module):
    """
    Multi-layer perceptron. Hidden layers use ``activation``; the last layer
    is linear.

    Example:
        >>> model = MLP(s, 3, [4, 4, 1])  # 3 -> 4 -> 4 -> 1
    """

    def __init__(
        self,
        session: Session,
        nin: int,
        nouts: List[int],
        activation: str = 'tanh'
    ) -> None:
        self.values = {}
        sizes = [nin] + nouts
        self.layers: List[Layer] = []

        for i in range(len(nouts)):
            is_output = (i == len(nouts) - 1)
            self.layers.append(
                Layer(
                    session,
                    sizes[i],
                    sizes[i + 1],
                    nonlin=not is_output,
                    activation=activation,
                    values=self.values
                )
            )

    def __call__(self, x: Sequence[Idx]) -> Union[Idx, List[Idx]]:
        """Returns a single node if the last layer has one neuron."""
        for layer in self.layers:
            x = layer(x)
        return x[0] if len(x) == 1 else x

    def parameters(self) -> List[Idx]:
        return [p for layer in self.layers for p in layer.parameters()]

    def __repr__(self) -> str:
        layer_strs = [str(layer) for layer in self.layers]
        return f"MLP([{', '.join(layer_strs)}])"


# =============================================================================
# Loss Functions
# =============================================================================

def mse_loss(
    session: Session,
    predictions: Sequence[Idx],
    targets: Sequence[float]
) -> Idx:
    """
    Mean squared error node: (1/n) * sum((pred_i - target_i)^2).

    Each target becomes a Constant node.
    """
    if len(predictions) != len(targets):
        raise ValueError(
            f"Got {len(predictions)} predictions but {len(targets)} targets"
        )

    total = session.constant(0.0)
    for pred, target in zip(predictions, targets):
        diff = session.subtract(pred, session.constant(target))
        total = session.sum(total, session.square(diff))
    return session.divide(total, session.constant(len(predictions)))


# =============================================================================
# Optimizers
# =============================================================================

class SGD:
    """
    Plain gradient descent on a parameter dict: v = v - lr * dL/dv.

    Attributes:
        values: Parameter values, updated in place.
        lr: Learning rate.
    """

    def __init__(self, values: Dict[Idx, float], lr: float = 0.01) -> None:
        self.values = values
        self.lr = lr

    def step(self, session: Session, grads: Gradients) -> None:
        """
        Update every parameter from its evaluated gradient node.

        Call after evaluating the derivative graph and before ``reset()``.

        Raises:
            KeyError: If a parameter has no gradient or it wasn't evaluated.
        """
        for idx in self.values:
            self.values[idx] -= self.lr * session.get_value(grads[idx])
