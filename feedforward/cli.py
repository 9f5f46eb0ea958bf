"""
cli.py
~~~~~~

Command-line driver: parse CSV records, train (or load weights), optionally
dump the weights, then count correct predictions on the same records.

Usage:
    feedforward [-v] [-d] [-l] < data/mnist_test.csv
"""

import logging
import os
import time
from contextlib import contextmanager
from typing import Dict, Generator

import click
import numpy as np

from feedforward import __version__
from feedforward.config import (
    DEFAULT_HIDDEN_SIZE,
    DEFAULT_INPUT_SIZE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_OUTPUT_SIZE,
    DEFAULT_WEIGHTS_FILE,
    configure_logging,
    load_settings,
)
from feedforward.exceptions import InvalidRecord
from feedforward.loader import read_training_set
from feedforward.network import Network
from feedforward.progress import percentage

logger = logging.getLogger(__name__)


@contextmanager
def timed(timings: Dict[str, float], name: str) -> Generator[None, None, None]:
    """Record the wall time of the block in milliseconds under ``name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        timings[name] = (time.perf_counter() - start) * 1000


@click.command()
@click.version_option(version=__version__)
@click.argument('data', type=click.File('r'), default='-')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output.')
@click.option('--dump-weights', '-d', is_flag=True,
              help='Dump network weights after training.')
@click.option('--load-weights', '-l', is_flag=True,
              help='Load network weights from previous training.')
@click.option('--weights-file', default=DEFAULT_WEIGHTS_FILE, show_default=True,
              type=click.Path(dir_okay=False),
              help='File the weights are dumped to and loaded from.')
@click.option('--input-size', default=DEFAULT_INPUT_SIZE, show_default=True,
              type=click.IntRange(min=1))
@click.option('--hidden-size', default=DEFAULT_HIDDEN_SIZE, show_default=True,
              type=click.IntRange(min=1))
@click.option('--output-size', default=DEFAULT_OUTPUT_SIZE, show_default=True,
              type=click.IntRange(min=1))
@click.option('--learning-rate', default=DEFAULT_LEARNING_RATE,
              show_default=True, type=click.FloatRange(min=0, min_open=True))
@click.option('--epochs', default=1, show_default=True,
              type=click.IntRange(min=1),
              help='Number of training passes over the records.')
@click.option('--seed', type=int, default=None,
              help='Seed for the initial random weights.')
def main(
    data,
    verbose: bool,
    dump_weights: bool,
    load_weights: bool,
    weights_file: str,
    input_size: int,
    hidden_size: int,
    output_size: int,
    learning_rate: float,
    epochs: int,
    seed,
) -> None:
    """Train a digit recognizer on CSV records read from DATA (default: stdin)."""
    settings = load_settings()
    if not verbose and 'LOG_LEVEL' not in os.environ:
        settings.log_level = 'WARNING'
    configure_logging(settings)

    rng = np.random.default_rng(seed) if seed is not None else None
    network = Network(
        input_size, hidden_size, output_size, learning_rate,
        verbose=verbose, rng=rng
    )
    timings: Dict[str, float] = {}

    with timed(timings, 'parsing'):
        try:
            training_set = read_training_set(data, input_size, output_size)
        except InvalidRecord as e:
            raise click.ClickException(str(e))

    with timed(timings, 'training'):
        # A successful load skips training entirely
        if not (load_weights and network.load_weights_from_file(weights_file)):
            if load_weights and verbose:
                click.echo("Unable to load weights. Training the network instead.")
            for epoch in range(epochs):
                logger.info(f"Training epoch {epoch + 1} / {epochs}")
                network.train(training_set)

    if dump_weights and not network.dump_weights_to_file(weights_file):
        click.echo(f"Unable to write weights to '{weights_file}'.", err=True)

    with timed(timings, 'matching'):
        matches = network.evaluate(training_set)

    total = len(training_set)
    click.echo("Neural Network Stats:")
    click.echo(
        f"  Matches: {matches} / {total} ({percentage(matches, total):.2f}%)"
    )
    click.echo(f"  Parsing time: {timings['parsing']:.0f}ms")
    click.echo(f"  Training time: {timings['training']:.0f}ms")
    click.echo(f"  Matching time: {timings['matching']:.0f}ms")


if __name__ == '__main__':
    main()
