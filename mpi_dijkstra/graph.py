import logging

import numpy as np

from mpi_dijkstra.errors import GraphError

logger = logging.getLogger(__name__)

# weights at or above this value in text input mean "no edge"
INFINITY = 1000000


def make_matrix(values, n):
    """Build an n x n float64 matrix from row-major values, mapping the sentinel to inf."""
    if len(values) != n * n:
        raise GraphError("expected %d weights for n=%d, got %d" % (n * n, n, len(values)))
    D = np.asarray(values, dtype=np.float64).reshape(n, n)
    D[D >= INFINITY] = np.inf
    check_matrix(D)
    return D


def check_matrix(D):
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise GraphError("adjacency matrix must be square, got shape %s" % (D.shape,))
    if D.shape[0] == 0:
        raise GraphError("graph has no vertices")
    if np.isnan(D).any():
        raise GraphError("adjacency matrix contains NaN")
    if (D < 0).any():
        i, j = np.argwhere(D < 0)[0]
        raise GraphError("negative weight %r on edge (%d, %d)" % (D[i, j], i, j))
    if (np.diag(D) != 0).any():
        logger.warning("non-zero diagonal entries; self loops are never used")


def read_matrix(stream):
    """Read `n` followed by n*n integers from a text stream."""
    try:
        tokens = stream.read().split()
    except UnicodeDecodeError as e:
        raise GraphError("input is not text: %s" % e)
    if not tokens:
        raise GraphError("empty input")
    try:
        n = int(tokens[0])
        values = [int(t) for t in tokens[1:]]
    except ValueError as e:
        raise GraphError("non-integer token in input: %s" % e)
    if n <= 0:
        raise GraphError("number of vertices must be positive, got %d" % n)
    return make_matrix(values, n)


def load_matrix(path):
    if path.endswith('.npy'):
        try:
            D = np.load(path).astype(np.float64)
        except (ValueError, TypeError) as e:
            raise GraphError("%s does not hold a numeric matrix: %s" % (path, e))
        D[D >= INFINITY] = np.inf
        check_matrix(D)
        return D
    with open(path) as f:
        return read_matrix(f)


def write_matrix(stream, D):
    n = D.shape[0]
    stream.write('%d\n' % n)
    for row in D:
        stream.write(' '.join(str(INFINITY) if np.isinf(w) else '%d' % w for w in row))
        stream.write('\n')


def save_matrix(path, D):
    if path.endswith('.npy'):
        np.save(path, D)
    else:
        with open(path, 'w') as f:
            write_matrix(f, D)


def generate_graph(n, seed=42, density=0.5, max_weight=100):
    """Random directed graph with integer weights in [1, max_weight) and no self loops."""
    rng = np.random.RandomState(seed)
    D = rng.randint(1, max_weight, size=(n, n)).astype(np.float64)
    D[rng.random_sample((n, n)) >= density] = np.inf
    np.fill_diagonal(D, 0)
    return D
