"""
network.py
~~~~~~~~~~

A three-layer (input, hidden, output) feedforward neural network trained
with online gradient descent.

The weights are updated after every single training example, so the order
of the training set matters: the same set in the same order, starting from
the same weights, always produces the same result.
"""

import logging
import math
import numbers
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from feedforward.activation import Activation, Sigmoid
from feedforward.exceptions import DimensionMismatch, InvalidWeightsFormat
from feedforward.matrix import (
    Matrix,
    column_vector,
    hadamard,
    is_column_vector,
    random_matrix,
)
from feedforward.progress import ConsoleReporter, NullReporter, ProgressReporter

# Configure module logger
logger = logging.getLogger(__name__)

# Target encoding: the correct class gets TARGET_ON, every other class gets
# TARGET_OFF, which keeps targets away from the flat ends of the sigmoid.
TARGET_ON = 1.0
TARGET_OFF = 0.01

TRAINING_TITLE = 'Training Network'
COUNTING_TITLE = 'Counting Correct Predictions'


class TrainingLabel(NamedTuple):
    """A single example: class index, target vector and input vector."""

    value: int
    label: Matrix
    input: Matrix


# Ordered sequence of examples; the order is the order of training
TrainingSet = List[TrainingLabel]


def target_vector(value: int, output_size: int) -> Matrix:
    """
    Build the target column vector for class ``value``.

    Raises:
        ValueError: If ``value`` is not a class index in [0, output_size)
    """
    if not isinstance(value, (int, np.integer)) or not 0 <= value < output_size:
        raise ValueError(
            f"Class index must be in [0, {output_size}), got {value!r}"
        )
    targets = [TARGET_OFF] * output_size
    targets[value] = TARGET_ON
    return column_vector(targets)


def make_training_label(
    value: int,
    inputs: Union[Sequence[float], Matrix],
    output_size: int
) -> TrainingLabel:
    """Build a TrainingLabel from a class index and normalized inputs."""
    if not isinstance(inputs, Matrix):
        inputs = column_vector(inputs)
    return TrainingLabel(int(value), target_vector(value, output_size), inputs)


def _check_size(name: str, value) -> int:
    if not isinstance(value, (int, np.integer)) or isinstance(value, bool) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class Network:
    """
    A fully connected 3-layer network.

    Args:
        input_size: Size of the input layer
        hidden_size: Size of the hidden layer
        output_size: Size of the output layer
        learning_rate: Gradient descent step size, must be positive
        verbose: Report progress on the console when no reporter is given
        activation: Elementwise activation, defaults to Sigmoid
        reporter: Progress sink, defaults to a console or no-op reporter
        rng: Optional numpy Generator used for the initial random weights

    Example:
        >>> net = Network(784, 300, 10, learning_rate=0.3)
        >>> net.train(training_set)
        >>> net.query(training_set[0].input)
        7
    """

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        output_size: int,
        learning_rate: float,
        verbose: bool = False,
        activation: Optional[Activation] = None,
        reporter: Optional[ProgressReporter] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.sizes = [
            _check_size('input_size', input_size),
            _check_size('hidden_size', hidden_size),
            _check_size('output_size', output_size),
        ]

        if (not isinstance(learning_rate, numbers.Real)
                or not learning_rate > 0):
            raise ValueError(
                f"learning_rate must be a positive number, got {learning_rate!r}"
            )

        self.learning_rate = float(learning_rate)
        self.verbose = verbose
        self.activation = activation if activation is not None else Sigmoid()

        if reporter is None:
            reporter = ConsoleReporter() if verbose else NullReporter()
        self.reporter = reporter

        self.input_weights = random_matrix(self.hidden_size, self.input_size, rng)
        self.hidden_weights = random_matrix(self.output_size, self.hidden_size, rng)
        self.trained = False

    @property
    def input_size(self) -> int:
        return self.sizes[0]

    @property
    def hidden_size(self) -> int:
        return self.sizes[1]

    @property
    def output_size(self) -> int:
        return self.sizes[2]

    @property
    def input_shape(self) -> Tuple[int, int]:
        """Shape of ``input_weights``."""
        return (self.hidden_size, self.input_size)

    @property
    def hidden_shape(self) -> Tuple[int, int]:
        """Shape of ``hidden_weights``."""
        return (self.output_size, self.hidden_size)

    def __repr__(self) -> str:
        return (
            f"Network({self.input_size}, {self.hidden_size}, "
            f"{self.output_size}, learning_rate={self.learning_rate})"
        )

    def set_weights(self, input_weights: Matrix, hidden_weights: Matrix) -> None:
        """
        Replace both weight matrices, for example with a known starting point.

        Raises:
            DimensionMismatch: If either matrix has the wrong shape
        """
        if input_weights.shape != self.input_shape:
            raise DimensionMismatch(
                'use as input weights', input_weights.shape, self.input_shape
            )
        if hidden_weights.shape != self.hidden_shape:
            raise DimensionMismatch(
                'use as hidden weights', hidden_weights.shape, self.hidden_shape
            )
        self.input_weights = Matrix.from_numpy(input_weights.to_numpy())
        self.hidden_weights = Matrix.from_numpy(hidden_weights.to_numpy())

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _check_input(self, inputs: Matrix) -> None:
        if not isinstance(inputs, Matrix):
            raise TypeError(f"Input must be a Matrix, got {type(inputs).__name__}")
        if not is_column_vector(inputs, self.input_size):
            raise DimensionMismatch(
                'feed', inputs.shape, (self.input_size, 1)
            )

    def feedforward(self, inputs: Matrix) -> Matrix:
        """Return the output layer activations for an input column vector."""
        self._check_input(inputs)
        hidden_output = self.activation.activate(self.input_weights @ inputs)
        return self.activation.activate(self.hidden_weights @ hidden_output)

    def query(self, inputs: Matrix) -> int:
        """
        Return the class with the highest output activation.

        Ties resolve to the lowest class index. The network is not modified.
        """
        return self.feedforward(inputs).argmax()

    def evaluate(self, training_set: Iterable[TrainingLabel]) -> int:
        """
        Count the examples whose queried class equals their ``value``.

        Returns:
            int: Number of correct predictions
        """
        examples = list(training_set)
        total = len(examples)
        correct = 0

        for number, example in enumerate(examples, start=1):
            if self.query(example.input) == example.value:
                correct += 1
            self.reporter.report(COUNTING_TITLE, number, total)
        self.reporter.end(COUNTING_TITLE)

        logger.debug(f"Evaluated {total} example(s): {correct} correct")
        return correct

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def backpropagate(self, example: TrainingLabel) -> Tuple[Matrix, Matrix]:
        """
        Compute the weight gradients for one example without applying them.

        The sigmoid derivative is taken of the pre-activation values of each
        layer, and the hidden errors use the current hidden weights.

        Returns:
            tuple: (gradient of hidden_weights, gradient of input_weights)
        """
        activate = self.activation.activate

        hidden_input = self.input_weights @ example.input
        hidden_output = activate(hidden_input)

        output_input = self.hidden_weights @ hidden_output
        output = activate(output_input)

        output_errors = example.label - output
        hidden_errors = self.hidden_weights.transpose() @ output_errors

        output_gradient = hadamard(
            -output_errors, activate(output_input, True)
        ) @ hidden_output.transpose()
        hidden_gradient = hadamard(
            -hidden_errors, activate(hidden_input, True)
        ) @ example.input.transpose()

        return output_gradient, hidden_gradient

    def train(self, training_set: Iterable[TrainingLabel]) -> None:
        """
        Run one pass of online gradient descent over ``training_set``.

        Both weight matrices are updated after every example, in order.
        """
        if not isinstance(training_set, Sequence):
            training_set = list(training_set)
        total = len(training_set)

        for number, example in enumerate(training_set, start=1):
            output_gradient, hidden_gradient = self.backpropagate(example)

            self.hidden_weights = (
                self.hidden_weights - self.learning_rate * output_gradient
            )
            self.input_weights = (
                self.input_weights - self.learning_rate * hidden_gradient
            )

            self.reporter.report(TRAINING_TITLE, number, total)

        self.reporter.end(TRAINING_TITLE)

        if total:
            self.trained = True
        logger.debug(f"Trained on {total} example(s)")

    # ------------------------------------------------------------------
    # Weight serialization
    # ------------------------------------------------------------------

    def _format_block(self, title: str, weights: Matrix) -> str:
        parts = []
        total = weights.rows * weights.cols
        for number, row in enumerate(weights.to_list(), start=1):
            # repr() round-trips a float exactly
            parts.extend(f"{value!r} " for value in row)
            self.reporter.report(title, number * weights.cols, total)
        self.reporter.end(title)
        return ''.join(parts)

    def dump_weights(self) -> bytes:
        """
        Serialize both weight matrices.

        Input weights come first and hidden weights second, row-major, every
        entry followed by a single space, with a newline between the two
        blocks. There is no header: the shapes are implied by the network.
        """
        text = (
            self._format_block('Dumping Input Weights', self.input_weights)
            + '\n'
            + self._format_block('Dumping Hidden Weights', self.hidden_weights)
        )
        return text.encode('ascii')

    def parse_weights(self, data: Union[bytes, str]) -> Tuple[Matrix, Matrix]:
        """
        Parse serialized weights for a network of this shape.

        Returns:
            tuple: (input_weights, hidden_weights)

        Raises:
            InvalidWeightsFormat: If the content is malformed or holds the
                wrong number of entries
        """
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode('ascii')
            except UnicodeDecodeError as e:
                raise InvalidWeightsFormat(
                    f"Weights must be ASCII text: {e}"
                ) from None
        if not isinstance(data, str):
            raise InvalidWeightsFormat(
                f"Weights must be bytes or str, got {type(data).__name__}"
            )

        input_count = self.hidden_size * self.input_size
        hidden_count = self.output_size * self.hidden_size
        expected = input_count + hidden_count

        tokens = data.split(' ')
        if len(tokens) < expected:
            raise InvalidWeightsFormat(
                f"Expected {expected} weights, found only {len(tokens)} token(s)"
            )
        if any(token.strip() for token in tokens[expected:]):
            raise InvalidWeightsFormat(
                f"Found more than the expected {expected} weights"
            )

        separator = tokens[input_count]
        if '\n' not in separator[:len(separator) - len(separator.lstrip())]:
            raise InvalidWeightsFormat(
                f"Missing newline between the input and hidden weights "
                f"after entry {input_count}"
            )

        input_weights = self._parse_block(
            'Loading Input Weights', tokens, 0, self.input_shape
        )
        hidden_weights = self._parse_block(
            'Loading Hidden Weights', tokens, input_count, self.hidden_shape
        )
        return input_weights, hidden_weights

    def _parse_block(
        self,
        title: str,
        tokens: List[str],
        offset: int,
        shape: Tuple[int, int]
    ) -> Matrix:
        rows, cols = shape
        total = rows * cols
        values = []

        for index in range(offset, offset + total):
            token = tokens[index]
            # float() also accepts digit separators such as '0_5'
            if '_' in token:
                raise InvalidWeightsFormat(
                    f"Malformed weight {token!r} at entry {index + 1}"
                )
            try:
                value = float(token)
            except ValueError:
                raise InvalidWeightsFormat(
                    f"Malformed weight {token!r} at entry {index + 1}"
                ) from None
            if not math.isfinite(value):
                raise InvalidWeightsFormat(
                    f"Non-finite weight {token!r} at entry {index + 1}"
                )
            values.append(value)

            if len(values) % cols == 0:
                self.reporter.report(title, len(values), total)
        self.reporter.end(title)

        return Matrix(rows, cols, values)

    def load_weights(self, data: Union[bytes, str]) -> bool:
        """
        Replace the weights with serialized ones.

        On any format error the current weights are left untouched.

        Returns:
            bool: True if the weights were loaded, False otherwise
        """
        try:
            input_weights, hidden_weights = self.parse_weights(data)
        except InvalidWeightsFormat as e:
            logger.warning(f"Unable to parse weights: {e}")
            return False

        self.input_weights = input_weights
        self.hidden_weights = hidden_weights
        self.trained = True
        logger.info(f"Loaded weights for {self!r}")
        return True

    def dump_weights_to_file(self, path: str) -> bool:
        """
        Write the serialized weights to ``path``.

        Returns:
            bool: True if the file was written, False otherwise
        """
        try:
            with open(path, 'wb') as f:
                f.write(self.dump_weights())
        except OSError as e:
            logger.error(f"Unable to write weights to '{path}': {e}")
            return False

        logger.info(f"Dumped weights to '{path}'")
        return True

    def load_weights_from_file(self, path: str) -> bool:
        """
        Load serialized weights from ``path``.

        Returns:
            bool: True if the weights were loaded, False if the file could
                not be read or parsed
        """
        try:
            with open(path, 'rb') as f:
                data = f.read()
        except OSError as e:
            logger.warning(f"Unable to read weights from '{path}': {e}")
            return False

        return self.load_weights(data)
