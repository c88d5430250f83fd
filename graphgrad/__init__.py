"""graphgrad: a scalar reverse-mode autodiff engine over an append-only node arena."""

from .operation import (
    Constant,
    Exponential,
    Idx,
    Ln,
    Multiply,
    Negative,
    Operation,
    Placeholder,
    Sum,
)
from .session import Node, Session
from .graph import Graph, Gradients, draw_graph
from .nn import Module, Neuron, Layer, MLP, mse_loss, SGD

__all__ = [
    "Constant",
    "Exponential",
    "Idx",
    "Ln",
    "Multiply",
    "Negative",
    "Operation",
    "Placeholder",
    "Sum",
    "Node",
    "Session",
    "Graph",
    "Gradients",
    "draw_graph",
    "Module",
    "Neuron",
    "Layer",
    "MLP",
    "mse_loss",
    "SGD",
]
