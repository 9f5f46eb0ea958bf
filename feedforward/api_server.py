"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for neural network training.

This module provides endpoints for:
- Creating and managing 3-layer networks
- Training networks with real-time progress updates via WebSockets
- Querying networks with digit images
- Exporting and importing network weights
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks
- SQLite for network persistence
"""

import base64
import logging
import math
import sys
import uuid
from io import BytesIO
from typing import Any, Dict, List, Optional

import gevent
import numpy as np
from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from feedforward.config import (
    DEFAULT_HIDDEN_SIZE,
    DEFAULT_INPUT_SIZE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_OUTPUT_SIZE,
    configure_logging,
    load_settings,
)
from feedforward.loader import load_training_set, normalize_pixel, MAX_PIXEL
from feedforward.matrix import Matrix, column_vector
from feedforward.model_persistence import (
    delete_network,
    delete_old_networks,
    list_saved_networks,
    load_network,
    save_network,
)
from feedforward.network import Network
from feedforward.progress import CallbackReporter, LoggingReporter, NullReporter

# ============================================================================
# LOGGING SETUP
# ============================================================================

settings = load_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not settings.production,
    engineio_logger=not settings.production,
    ping_timeout=60,
    ping_interval=25
)

# Send a training_update event every this many examples
UPDATE_EVERY = 100

# Log training progress on the server every this many examples
LOG_EVERY = 1000

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# Records used for training and for accuracy/examples, loaded once at startup
training_data: Optional[list] = None
test_data: Optional[list] = None


# ============================================================================
# DATA LOADING
# ============================================================================

def load_datasets() -> None:
    """
    Load the configured CSV datasets into global variables.

    Either path may be unset, in which case the matching endpoints report
    that the data is not available.
    """
    global training_data, test_data

    if settings.training_data:
        training_data = load_training_set(settings.training_data)
    else:
        logger.warning("TRAINING_DATA is not set, training is disabled")

    if settings.test_data:
        test_data = load_training_set(settings.test_data)
    else:
        logger.warning("TEST_DATA is not set, accuracy and examples are disabled")


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup to restore networks that were saved before the
    application was restarted.
    """
    saved_networks = list_saved_networks(settings.model_dir)

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id, settings.model_dir)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue
        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'learning_rate': net_info['learning_rate'],
            'trained': net_info['trained'],
            'accuracy': net_info['accuracy']
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately, then every 24 hours to:
    - Delete networks older than CLEANUP_DAYS from the database
    - Sync in-memory networks with the database
    - Remove completed/failed training jobs from memory
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_old_networks(
                days=settings.cleanup_days, model_dir=settings.model_dir
            )

            if deleted_count > 0:
                sync_active_networks()
                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
            elif deleted_count == 0:
                logger.info("Cleanup completed: no old networks found to delete")
            else:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)  # 1 hour


def sync_active_networks() -> None:
    """Drop trained in-memory networks that are no longer in the database."""
    saved_ids = {
        net['network_id'] for net in list_saved_networks(settings.model_dir)
    }
    stale_ids = [
        nid for nid, info in active_networks.items()
        if info['trained'] and nid not in saved_ids and not is_training(nid)
    ]
    for nid in stale_ids:
        del active_networks[nid]
        logger.info(f"Removed network {nid} from memory (deleted from database)")


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    This function is idempotent - calling it multiple times has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


def startup() -> None:
    """Load data, restore saved networks and start background tasks."""
    load_datasets()
    reload_saved_networks()
    start_cleanup_task()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def error_response(message: str, status: int):
    return jsonify({'error': message}), status


def get_network_info(network_id: str) -> Optional[Dict[str, Any]]:
    """Find a network in memory, falling back to the database."""
    if network_id in active_networks:
        return active_networks[network_id]

    net = load_network(network_id, settings.model_dir)
    if net is None:
        return None

    info = {
        'network': net,
        'architecture': list(net.sizes),
        'learning_rate': net.learning_rate,
        'trained': net.trained,
        'accuracy': None
    }
    active_networks[network_id] = info
    return info


def is_training(network_id: str) -> bool:
    """Whether a pending or running job holds the network."""
    return any(
        job['network_id'] == network_id
        and job['status'] in ('pending', 'training')
        for job in training_jobs.values()
    )


def is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_positive_number(value) -> bool:
    return (
        isinstance(value, (int, float)) and not isinstance(value, bool)
        and math.isfinite(value) and value > 0
    )


def matrix_to_float_list(matrix: Matrix) -> List[float]:
    """Flatten a matrix to a list of floats (for JSON serialization)."""
    return list(matrix.entries())


def parse_query_input(data: Dict[str, Any], input_size: int) -> Matrix:
    """
    Build the input column vector of a query request.

    Accepts either normalized ``input`` values or raw ``pixels`` in [0, 255].

    Raises:
        ValueError: If the request does not hold a valid input
    """
    if 'input' in data:
        values = data['input']
        if not isinstance(values, list) or not all(
            isinstance(v, (int, float)) and not isinstance(v, bool)
            and math.isfinite(v) for v in values
        ):
            raise ValueError('input must be a list of finite numbers')
    elif 'pixels' in data:
        pixels = data['pixels']
        if not isinstance(pixels, list) or not all(
            isinstance(p, int) and not isinstance(p, bool)
            and 0 <= p <= MAX_PIXEL for p in pixels
        ):
            raise ValueError(f'pixels must be a list of integers in [0, {MAX_PIXEL}]')
        values = [normalize_pixel(p) for p in pixels]
    else:
        raise ValueError("Request must contain 'input' or 'pixels'")

    if len(values) != input_size:
        raise ValueError(
            f'Expected {input_size} values, got {len(values)}'
        )
    return column_vector(values)


def create_digit_image(image_data: Matrix, predicted: int, actual: int) -> str:
    """
    Create a base64-encoded PNG image of an input vector.

    Square inputs (784 = 28x28) are drawn as images, anything else as a
    single row of pixels.

    Args:
        image_data: Input column vector
        predicted: The class the network predicted
        actual: The correct class

    Returns:
        Base64-encoded PNG image string
    """
    pixels = image_data.to_numpy().reshape(-1)
    side = math.isqrt(pixels.size)
    if side * side == pixels.size:
        pixels = pixels.reshape(side, side)
    else:
        pixels = pixels.reshape(1, -1)

    plt.figure(figsize=(3, 3))
    plt.imshow(pixels, cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'training_data': training_data is not None,
        'test_data': test_data is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new neural network with random weights.

    Request body (optional):
        {
            'input_size': 784,
            'hidden_size': 300,
            'output_size': 10,
            'learning_rate': 0.3
        }

    Returns:
        JSON with network_id, architecture, learning_rate and status
    """
    data = request.get_json(silent=True) or {}
    sizes = [
        data.get('input_size', DEFAULT_INPUT_SIZE),
        data.get('hidden_size', DEFAULT_HIDDEN_SIZE),
        data.get('output_size', DEFAULT_OUTPUT_SIZE),
    ]
    learning_rate = data.get('learning_rate', DEFAULT_LEARNING_RATE)

    if not all(is_positive_int(size) for size in sizes):
        logger.warning(f"Invalid architecture requested: {sizes}")
        return error_response('Layer sizes must be positive integers', 400)
    if not is_positive_number(learning_rate):
        return error_response('learning_rate must be a positive number', 400)

    network_id = str(uuid.uuid4())
    net = Network(*sizes, learning_rate=learning_rate)

    active_networks[network_id] = {
        'network': net,
        'architecture': sizes,
        'learning_rate': net.learning_rate,
        'trained': False,
        'accuracy': None
    }

    logger.info(f"Created network {network_id} with architecture {sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': sizes,
        'learning_rate': net.learning_rate,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Every epoch is one pass of online gradient descent over the training
    data, in file order.

    Request body (optional):
        {'epochs': 1}

    Returns:
        JSON with job_id, network_id, and status
    """
    info = get_network_info(network_id)
    if info is None:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    if training_data is None:
        return error_response('Training data not available', 503)

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)
    if not is_positive_int(epochs):
        return error_response('epochs must be a positive integer', 400)

    net = info['network']
    if training_data:
        data_sizes = (training_data[0].input.rows, training_data[0].label.rows)
        if (net.input_size, net.output_size) != data_sizes:
            return error_response(
                f'Network has {net.input_size} inputs and {net.output_size} '
                f'outputs, training data has {data_sizes[0]} inputs and '
                f'{data_sizes[1]} classes', 400
            )

    if is_training(network_id):
        return error_response('Network is already training', 409)

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'job_id': job_id,
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task, network_id, job_id, epochs
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(network_id: str, job_id: str, epochs: int) -> None:
    """
    Background task that trains a neural network.

    Sends progress updates via WebSocket as training progresses and yields to
    other greenlets after every example.
    """
    job = training_jobs[job_id]
    log_reporter = LoggingReporter(every=LOG_EVERY)
    net = None
    previous_reporter = None
    epoch = 0

    def on_report(title: str, count: int, total: int) -> None:
        progress = ((epoch - 1) + count / total) / epochs * 100
        job['status'] = 'training'
        job['progress'] = progress
        log_reporter.report(title, count, total)

        if count % UPDATE_EVERY == 0 or count == total:
            socketio.emit('training_update', {
                'job_id': job_id,
                'network_id': network_id,
                'epoch': epoch,
                'total_epochs': epochs,
                'example': count,
                'total_examples': total,
                'progress': progress
            })

        # Let gevent serve other requests during training
        gevent.sleep(0)

    try:
        info = active_networks.get(network_id)
        if info is None:
            raise LookupError(f"Network {network_id} no longer exists")
        net = info['network']
        previous_reporter = net.reporter
        net.reporter = CallbackReporter(on_report, on_end=log_reporter.end)

        logger.info(f"Starting training for job {job_id}")

        for epoch in range(1, epochs + 1):
            net.train(training_data)

        net.reporter = NullReporter()
        accuracy = None
        if test_data:
            accuracy = net.evaluate(test_data) / len(test_data)

        info['trained'] = net.trained
        info['accuracy'] = accuracy
        job['status'] = 'completed'
        job['accuracy'] = accuracy
        job['progress'] = 100

        # A network removed from memory while training stays removed
        if active_networks.get(network_id) is info:
            save_network(
                net, network_id, model_dir=settings.model_dir,
                trained=net.trained, accuracy=accuracy
            )
        else:
            logger.warning(
                f"Network {network_id} was removed during job {job_id}, not saving"
            )

        logger.info(f"Training completed for job {job_id}: accuracy {accuracy}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': accuracy,
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        job['status'] = 'failed'
        job['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)

    finally:
        if net is not None:
            net.reporter = previous_reporter


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return error_response('Training job not found', 404)


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'learning_rate': info['learning_rate'],
            'trained': info['trained'],
            'accuracy': info['accuracy'],
            'status': 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    # Get saved networks, excluding duplicates already in memory
    saved_only = []
    for net in list_saved_networks(settings.model_dir):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>/query', methods=['POST'])
def query_network(network_id: str):
    """
    Classify one input with a network.

    Request body:
        {'input': [0.01, ..., 1.0]}  # normalized values
        or {'pixels': [0, ..., 255]}  # raw pixel intensities

    Returns:
        JSON with the predicted class and the output layer activations
    """
    info = get_network_info(network_id)
    if info is None:
        return error_response('Network not found', 404)

    net = info['network']
    data = request.get_json(silent=True) or {}
    try:
        inputs = parse_query_input(data, net.input_size)
    except ValueError as e:
        return error_response(str(e), 400)

    output = net.feedforward(inputs)
    return jsonify({
        'network_id': network_id,
        'predicted_class': output.argmax(),
        'network_output': matrix_to_float_list(output)
    }), 200


@app.route('/api/networks/<network_id>/weights', methods=['GET'])
def export_weights(network_id: str):
    """Return the network weights in the text weight format."""
    info = get_network_info(network_id)
    if info is None:
        return error_response('Network not found', 404)

    return Response(
        info['network'].dump_weights(),
        mimetype='text/plain',
        headers={
            'Content-Disposition': f'attachment; filename={network_id}.weights'
        }
    )


@app.route('/api/networks/<network_id>/weights', methods=['PUT'])
def import_weights(network_id: str):
    """
    Replace the network weights with uploaded weight text.

    Invalid content leaves the current weights unchanged.
    """
    info = get_network_info(network_id)
    if info is None:
        return error_response('Network not found', 404)

    if is_training(network_id):
        return error_response('Network is training', 409)

    net = info['network']
    if not net.load_weights(request.get_data()):
        return error_response(
            f'Invalid weights for a {net.input_size}x{net.hidden_size}x'
            f'{net.output_size} network', 400
        )

    info['trained'] = True
    info['accuracy'] = None
    save_network(net, network_id, model_dir=settings.model_dir, trained=True)

    logger.info(f"Imported weights into network {network_id}")
    return jsonify({'network_id': network_id, 'status': 'weights_loaded'}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    if is_training(network_id):
        return error_response('Network is training', 409)

    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id, settings.model_dir)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """
    Delete all networks from both memory and disk.

    Networks with a pending or running training job are kept and listed
    under ``skipped``.
    """
    saved_ids = [
        net['network_id'] for net in list_saved_networks(settings.model_dir)
    ]
    all_network_ids = set(active_networks) | set(saved_ids)
    skipped = sorted(nid for nid in all_network_ids if is_training(nid))
    deletable_ids = all_network_ids - set(skipped)

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in deletable_ids:
        if active_networks.pop(network_id, None) is not None:
            deleted_from_memory_count += 1
        if delete_network(network_id, settings.model_dir):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(deletable_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk, "
        f"{len(skipped)} skipped while training"
    )

    return jsonify({
        'deleted_count': len(deletable_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'skipped': skipped,
        'message': f'Successfully deleted {len(deletable_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 2}  # defaults to CLEANUP_DAYS

    Returns:
        JSON with deleted_count, days, and message
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', settings.cleanup_days)

    if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
        return error_response('days must be a non-negative number', 400)

    deleted_count = delete_old_networks(
        days=int(days), model_dir=settings.model_dir
    )
    if deleted_count == -1:
        return error_response('Error occurred during cleanup', 500)

    if deleted_count:
        sync_active_networks()

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# EXAMPLE ENDPOINTS
# ============================================================================

def find_example(network_id: str, successful: bool, max_attempts: int):
    """
    Return a random test example that the network classifies correctly
    (``successful``) or incorrectly.
    """
    info = get_network_info(network_id)
    if info is None:
        logger.warning(f"Example requested for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    if not test_data:
        logger.error("Test data not loaded or empty")
        return error_response('Test data not available', 503)

    net = info['network']
    kind = 'successful' if successful else 'unsuccessful'

    for attempt in range(max_attempts):
        index = int(np.random.randint(0, len(test_data)))
        example = test_data[index]

        output = net.feedforward(example.input)
        predicted = output.argmax()

        if (predicted == example.value) == successful:
            logger.debug(f"Found {kind} example on attempt {attempt + 1}")

            return jsonify({
                'network_id': network_id,
                'example_index': index,
                'predicted_digit': predicted,
                'actual_digit': example.value,
                'image_data': create_digit_image(
                    example.input, predicted, example.value
                ),
                'network_output': matrix_to_float_list(output)
            }), 200

    logger.warning(f"No {kind} example found after {max_attempts} attempts")
    return error_response(
        f'No {kind} example found after {max_attempts} attempts', 404
    )


@app.route('/api/networks/<network_id>/successful_example', methods=['GET'])
def get_successful_example(network_id: str):
    """Return a random test example where the network predicted correctly."""
    return find_example(network_id, successful=True, max_attempts=100)


@app.route('/api/networks/<network_id>/unsuccessful_example', methods=['GET'])
def get_unsuccessful_example(network_id: str):
    """Return a random test example where the network predicted incorrectly."""
    return find_example(network_id, successful=False, max_attempts=200)


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main() -> None:
    """Start the API server with WebSocket support."""
    startup()

    port = settings.port
    if settings.production:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not settings.production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()
