#!/usr/bin/env python3
"""
graphgrad Demo: Gradients as Graphs
===================================

This demo shows the complete workflow:
1. Build an expression, differentiate it, read the gradients
2. Fit a single weight with gradient descent (feed, evaluate, update, reset)
3. Print the forward graph and the derivative graph
4. Train a small MLP and plot its loss curve

Run: python examples/demo.py
"""

import random
from typing import List, Tuple

import matplotlib.pyplot as plt
import numpy as np

from graphgrad import MLP, SGD, Graph, Session, draw_graph, mse_loss


ITERATIONS = 100
LEARNING_RATE = 0.01
W_START = 3.0


def demo_gradient_computation() -> None:
    """Differentiate f(x) = x^2 + 2x + 1 at x = 3."""
    print("=" * 60)
    print("DEMO 1: Automatic Gradient Computation")
    print("=" * 60)
    print()

    s = Session()
    x = s.placeholder()
    f = s.sum(
        s.sum(s.square(x), s.multiply(s.constant(2.0), x)),
        s.one()
    )
    graph = Graph.construct([f], s)
    deriv_graph, grads = graph.generate_deriv_graph(s)

    print("Computing gradients for f(x) = x² + 2x + 1 at x = 3")
    print()
    print(f"f(3) = {s.eval_graph(graph, {x: 3.0})[0]}")
    s.eval_graph(deriv_graph)
    print(f"df/dx at x=3 = {s.get_value(grads[x])}")
    print("(Analytical: df/dx = 2x + 2 = 2(3) + 2 = 8)")
    print()
    print(f"Forward graph: {graph.n_nodes} nodes, "
          f"derivative graph: {deriv_graph.n_nodes} nodes")
    print()


def demo_linear_fit() -> None:
    """
    Fit w in error = (x * w - y)^2 with x = 2, y = 8.

    The graphs are built once. Every iteration feeds the current w, evaluates
    both graphs, steps w, and resets the cache so the next feed takes effect.
    """
    print("=" * 60)
    print("DEMO 2: Fitting a Weight")
    print("=" * 60)
    print()

    s = Session()
    x = s.constant(2.0)
    w = s.placeholder()
    y = s.constant(8.0)
    error = s.square(s.subtract(s.multiply(x, w), y))

    graph = Graph.construct([error], s)
    deriv_graph, grads = graph.generate_deriv_graph(s)

    w_val = W_START
    for _ in range(ITERATIONS):
        s.eval_graph(graph, {w: w_val})
        s.eval_graph(deriv_graph)
        err = s.get_value(error)
        w_val -= s.get_value(grads[w]) * LEARNING_RATE

        print(f"Error: {err}, W_val: {w_val}")
        s.reset()
    print()


def demo_graph_visualization() -> None:
    """Show a small graph and its derivative graph."""
    print("=" * 60)
    print("DEMO 3: Computation Graph Visualization")
    print("=" * 60)
    print()

    s = Session()
    x = s.constant(2.0)
    y = s.constant(3.0)
    out = s.tanh(s.sum(s.multiply(x, y), x))

    graph = Graph.construct([out], s)
    deriv_graph, grads = graph.generate_deriv_graph(s)
    s.eval_graph(graph)
    s.eval_graph(deriv_graph)

    print("Expression: out = tanh(x*y + x) at x=2, y=3")
    print(f"  out = tanh(8) = {s.get_value(out):.6f}")
    print(f"  d(out)/dx = {s.get_value(grads[x]):.6f}")
    print(f"  d(out)/dy = {s.get_value(grads[y]):.6f}")
    print()
    print(draw_graph(s, graph))
    print()
    print(f"Derivative graph has {deriv_graph.n_nodes} nodes; "
          f"d(out)/dx is node {grads[x]}")
    print()


def make_circles(n_samples: int = 40, seed: int = 42) -> Tuple[np.ndarray, np.ndarray]:
    """Points inside the unit circle get 1, points outside get 0."""
    rng = np.random.default_rng(seed)
    X = rng.uniform(-1.5, 1.5, size=(n_samples, 2))
    y = (np.hypot(X[:, 0], X[:, 1]) < 1.0).astype(float)
    return X, y


def plot_loss_curve(losses: List[float]) -> None:
    """Save the training loss over epochs to loss_curve.png."""
    plt.figure(figsize=(10, 6))
    plt.plot(losses, 'b-', linewidth=2)
    plt.xlabel('Epoch')
    plt.ylabel('Loss')
    plt.title('Training Loss Curve')
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig('./loss_curve.png', dpi=150)
    plt.close()
    print("Saved loss curve to: loss_curve.png")


def demo_neural_network(epochs: int = 200, lr: float = 0.2) -> None:
    """Train an MLP whose loss graph is built once and re-fed every epoch."""
    print("=" * 60)
    print("DEMO 4: Training a Neural Network")
    print("=" * 60)
    print()

    random.seed(42)
    X, y = make_circles()

    s = Session()
    model = MLP(s, 2, [8, 1])
    preds = [model([s.constant(a), s.constant(b)]) for a, b in X]
    loss = mse_loss(s, preds, y.tolist())

    graph = Graph.construct([loss], s)
    deriv_graph, grads = graph.generate_deriv_graph(s)
    print(f"Model: {model}, {len(model.parameters())} parameters")
    print(f"Loss graph: {graph.n_nodes} nodes, derivative graph: "
          f"{deriv_graph.n_nodes} nodes")
    print()

    optimizer = SGD(model.values, lr=lr)
    losses = []
    for epoch in range(epochs):
        losses.append(s.eval_graph(graph, model.values)[0])
        s.eval_graph(deriv_graph)
        optimizer.step(s, grads)
        s.reset()

        if (epoch + 1) % 20 == 0:
            print(f"Epoch {epoch + 1:3d} | Loss: {losses[-1]:.4f}")

    print()
    plot_loss_curve(losses)
    print()


def main() -> None:
    """Run all demos."""
    demo_gradient_computation()
    demo_linear_fit()
    demo_graph_visualization()
    demo_neural_network()

    print("=" * 60)
    print("ALL DEMOS COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    main()
