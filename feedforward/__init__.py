"""
feedforward package
~~~~~~~~~~~~~~~~~~~

A three-layer feedforward neural network for MNIST digit recognition.
Contains the matrix engine, the network implementation, record loading,
model persistence, a command-line driver and an API server.
"""

__version__ = "1.0.0"

from feedforward.activation import Activation, Sigmoid
from feedforward.exceptions import (
    DimensionMismatch,
    IndexOutOfRange,
    InvalidRecord,
    InvalidWeightsFormat,
    NetworkError,
)
from feedforward.matrix import Matrix, column_vector, random_matrix
from feedforward.network import Network, TrainingLabel, make_training_label

__all__ = [
    'Activation',
    'DimensionMismatch',
    'IndexOutOfRange',
    'InvalidRecord',
    'InvalidWeightsFormat',
    'Matrix',
    'Network',
    'NetworkError',
    'Sigmoid',
    'TrainingLabel',
    'column_vector',
    'make_training_label',
    'random_matrix',
]
