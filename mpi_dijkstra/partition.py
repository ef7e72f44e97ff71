import logging

import numpy as np

from mpi_dijkstra.errors import PartitionError

logger = logging.getLogger(__name__)


def check_divisible(n, p):
    if p <= 0:
        raise PartitionError("number of workers must be positive, got %d" % p)
    if n % p != 0:
        raise PartitionError(
            "%d vertices cannot be split evenly across %d workers" % (n, p))
    return n // p


def owner_of(v, n, p):
    """Rank of the worker whose column block holds vertex `v`."""
    loc_n = check_divisible(n, p)
    if not 0 <= v < n:
        raise IndexError("vertex %d out of range [0, %d)" % (v, n))
    return v // loc_n


class MatrixBlock(object):
    """One worker's column block of the adjacency matrix.

    The weights live in a flat owned buffer described by `(rows, cols, stride)`:
    row `i` occupies `buf[i * stride : i * stride + cols]`.  Columns are
    addressed with global vertex ids; the block covers
    `[first_vertex, first_vertex + cols)`.
    """

    def __init__(self, buf, rows, cols, stride=None, first_vertex=0):
        stride = cols if stride is None else stride
        if stride < cols:
            raise PartitionError("stride %d is smaller than width %d" % (stride, cols))
        buf = np.ascontiguousarray(buf, dtype=np.float64).ravel()
        if buf.size < rows * stride:
            raise PartitionError(
                "buffer holds %d values, descriptor needs %d" % (buf.size, rows * stride))
        self.buf = buf
        self.rows = rows
        self.cols = cols
        self.stride = stride
        self.first_vertex = first_vertex

    @classmethod
    def from_columns(cls, columns, first_vertex=0):
        rows, cols = columns.shape
        return cls(np.ascontiguousarray(columns), rows, cols, cols, first_vertex)

    def owns(self, v):
        return self.first_vertex <= v < self.first_vertex + self.cols

    def local_index(self, v):
        if not self.owns(v):
            raise IndexError("vertex %d is not in block [%d, %d)"
                             % (v, self.first_vertex, self.first_vertex + self.cols))
        return v - self.first_vertex

    def _check_row(self, i):
        if not 0 <= i < self.rows:
            raise IndexError("row %d out of range [0, %d)" % (i, self.rows))

    def weight(self, i, v):
        """weight(i, v) for a vertex `v` owned by this block."""
        self._check_row(i)
        return self.buf[i * self.stride + self.local_index(v)]

    def row(self, i):
        """View of row `i` restricted to the owned columns."""
        self._check_row(i)
        start = i * self.stride
        return self.buf[start:start + self.cols]

    def to_array(self):
        view = self.buf[:self.rows * self.stride].reshape(self.rows, self.stride)
        return view[:, :self.cols].copy()

    def __repr__(self):
        return '<MatrixBlock rows=%d cols=%d stride=%d vertices=[%d, %d)>' % (
            self.rows, self.cols, self.stride,
            self.first_vertex, self.first_vertex + self.cols)


def partition_columns(D, p):
    """Split a square matrix into `p` contiguous column blocks, one per worker."""
    D = np.asarray(D, dtype=np.float64)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise PartitionError("adjacency matrix must be square, got shape %s" % (D.shape,))
    n = D.shape[0]
    loc_n = check_divisible(n, p)

    blocks = []
    for r in range(p):
        start_col = r * loc_n
        blocks.append(MatrixBlock.from_columns(D[:, start_col:start_col + loc_n], start_col))
        logger.debug("worker %d: columns %d-%d", r, start_col, start_col + loc_n - 1)
    return blocks
