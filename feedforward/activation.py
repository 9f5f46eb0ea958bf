"""
activation.py
~~~~~~~~~~~~~

Elementwise activation functions used by the network.
"""

import numpy as np

from feedforward.matrix import Matrix


class Activation:
    """
    An elementwise activation function with a derivative mode.

    Subclasses implement ``evaluate`` on numpy arrays; ``activate`` lifts it
    to plain floats and to whole matrices.
    """

    def evaluate(self, values: np.ndarray, derivative: bool = False) -> np.ndarray:
        raise NotImplementedError

    def activate(self, value, derivative: bool = False):
        """
        Apply the function (or its derivative) to a float or a Matrix.

        A Matrix argument yields a new Matrix of the same shape.
        """
        if isinstance(value, Matrix):
            return value.map(lambda entries: self.evaluate(entries, derivative))
        return float(self.evaluate(np.float64(value), derivative))

    def __call__(self, value, derivative: bool = False):
        return self.activate(value, derivative)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Sigmoid(Activation):
    """Logistic sigmoid, ``1 / (1 + e^-x)``."""

    def evaluate(self, values: np.ndarray, derivative: bool = False) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)

        # exp(-|x|) never overflows; both branches are the same function
        decay = np.exp(-np.abs(values))
        result = np.where(
            values >= 0,
            1.0 / (1.0 + decay),
            decay / (1.0 + decay)
        )

        if derivative:
            return result * (1.0 - result)
        return result


def sigmoid(value, derivative: bool = False):
    return Sigmoid().activate(value, derivative)
