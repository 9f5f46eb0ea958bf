"""
loader.py
~~~~~~~~~

Reads MNIST-style CSV records into training sets.

Each record is ``value,p1,...,pN``: the class index followed by ``N`` raw
pixel intensities in [0, 255]. Pixels are normalized into [0.01, 1.0] so no
input is exactly zero.
"""

import logging
from typing import Iterable, Optional, TextIO

from feedforward.config import DEFAULT_INPUT_SIZE, DEFAULT_OUTPUT_SIZE
from feedforward.exceptions import InvalidRecord
from feedforward.matrix import column_vector
from feedforward.network import TrainingLabel, TrainingSet, target_vector

logger = logging.getLogger(__name__)

MAX_PIXEL = 255


def normalize_pixel(pixel: int) -> float:
    """Scale a pixel in [0, 255] into [0.01, 1.0]."""
    return (pixel / MAX_PIXEL) * 0.99 + 0.01


def _parse_int(token: str, what: str, line_number: Optional[int]) -> int:
    try:
        return int(token)
    except ValueError:
        raise InvalidRecord(f"Malformed {what} {token!r}", line_number) from None


def parse_record(
    line: str,
    input_size: int = DEFAULT_INPUT_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE,
    line_number: Optional[int] = None
) -> TrainingLabel:
    """
    Parse one CSV record into a TrainingLabel.

    Args:
        line: The record text
        input_size: Number of pixel values expected after the class index
        output_size: Number of classes
        line_number: Included in error messages when given

    Returns:
        TrainingLabel: The parsed example

    Raises:
        InvalidRecord: If the record is malformed
    """
    fields = line.strip().split(',')
    if len(fields) != input_size + 1:
        raise InvalidRecord(
            f"Expected {input_size + 1} fields, found {len(fields)}",
            line_number
        )

    value = _parse_int(fields[0], 'class index', line_number)
    if not 0 <= value < output_size:
        raise InvalidRecord(
            f"Class index {value} is not in [0, {output_size})", line_number
        )

    inputs = []
    for token in fields[1:]:
        pixel = _parse_int(token, 'pixel', line_number)
        if not 0 <= pixel <= MAX_PIXEL:
            raise InvalidRecord(
                f"Pixel {pixel} is not in [0, {MAX_PIXEL}]", line_number
            )
        inputs.append(normalize_pixel(pixel))

    return TrainingLabel(
        value, target_vector(value, output_size), column_vector(inputs)
    )


def parse_training_set(
    lines: Iterable[str],
    input_size: int = DEFAULT_INPUT_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE
) -> TrainingSet:
    """Parse every non-blank line, keeping the order of the input."""
    training_set = []
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        training_set.append(
            parse_record(line, input_size, output_size, line_number)
        )

    logger.debug(f"Parsed {len(training_set)} training record(s)")
    return training_set


def read_training_set(
    stream: TextIO,
    input_size: int = DEFAULT_INPUT_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE
) -> TrainingSet:
    return parse_training_set(stream, input_size, output_size)


def load_training_set(
    path: str,
    input_size: int = DEFAULT_INPUT_SIZE,
    output_size: int = DEFAULT_OUTPUT_SIZE
) -> TrainingSet:
    """
    Load a CSV file of training records.

    Raises:
        OSError: If the file cannot be read
        InvalidRecord: If a record is malformed
    """
    logger.info(f"Loading training records from '{path}'")
    with open(path, 'r', encoding='ascii') as f:
        training_set = read_training_set(f, input_size, output_size)
    logger.info(f"Loaded {len(training_set)} record(s) from '{path}'")
    return training_set
