"""Column-partitioned Dijkstra.

Every worker holds all rows but only its own columns of the adjacency
matrix, so after the workers agree on the next closest vertex `u` each of
them can relax its own vertices from row `u` without further communication.
The only collective per iteration is the all-reduce that picks `u`.
"""
import heapq
import logging
import sys

import numpy as np

logger = logging.getLogger(__name__)

SOURCE = 0
NO_VERTEX = -1
NO_PREDECESSOR = -1


class LocalState(object):
    """dist / pred / settled arrays for the vertices one worker owns."""

    def __init__(self, dist, pred, settled, first_vertex=0):
        self.dist = dist
        self.pred = pred
        self.settled = settled
        self.first_vertex = first_vertex

    @property
    def size(self):
        return self.dist.shape[0]

    def global_id(self, loc_v):
        return self.first_vertex + loc_v


def init_local_state(block):
    dist = np.array(block.row(SOURCE), dtype=np.float64)
    pred = np.where(np.isfinite(dist), SOURCE, NO_PREDECESSOR).astype(np.int64)
    settled = np.zeros(block.cols, dtype=bool)
    if block.owns(SOURCE):
        loc_source = block.local_index(SOURCE)
        settled[loc_source] = True
        dist[loc_source] = 0.0
        pred[loc_source] = NO_PREDECESSOR
    return LocalState(dist, pred, settled, block.first_vertex)


def find_min_dist(state):
    """Local index of the closest unsettled owned vertex, or NO_VERTEX.

    Vertices at infinite distance are never candidates; ties go to the
    lowest index.
    """
    if state.size == 0:
        return NO_VERTEX
    open_dist = np.where(state.settled, np.inf, state.dist)
    loc_u = int(np.argmin(open_dist))
    if not np.isfinite(open_dist[loc_u]):
        return NO_VERTEX
    return loc_u


def local_candidate(state):
    loc_u = find_min_dist(state)
    if loc_u == NO_VERTEX:
        return (float('inf'), NO_VERTEX)
    return (float(state.dist[loc_u]), state.global_id(loc_u))


def candidate_key(candidate):
    dist, v = candidate
    return (dist, sys.maxsize if v == NO_VERTEX else v)


def reduce_candidates(candidates):
    """Lexicographic (distance, vertex id) minimum; the empty candidate loses every tie."""
    return min(candidates, key=candidate_key)


def global_min(comm, candidate):
    """All-reduce of the per-worker candidates.

    Each worker gathers the full candidate list and applies the same
    comparator, so all of them hold the identical winner afterwards.
    """
    return reduce_candidates(comm.allgather(candidate))


def mark_settled(state, u):
    if state.first_vertex <= u < state.first_vertex + state.size:
        state.settled[u - state.first_vertex] = True
        return True
    return False


def relax(state, block, u, dist_u):
    """Relax the owned unsettled vertices through the newly settled `u`.

    Returns the number of vertices whose distance improved.
    """
    through_u = dist_u + block.row(u)
    improved = ~state.settled & (through_u < state.dist)
    state.dist[improved] = through_u[improved]
    state.pred[improved] = u
    return int(np.count_nonzero(improved))


def dijkstra_parallel(comm, block):
    """Run the solver on one worker and return its LocalState.

    All workers of `comm` must call this with their own block of the same
    matrix.
    """
    rank = comm.Get_rank()
    n = block.rows
    try:
        state = init_local_state(block)
    except MemoryError:
        # a worker missing from the reductions would hang the others
        logger.error("worker %d could not allocate its local arrays", rank)
        comm.Abort(1)
        raise
    logger.debug("worker %d starts with %r", rank, block)

    iterations = 0
    for _ in range(n - 1):
        dist_u, u = global_min(comm, local_candidate(state))
        if u == NO_VERTEX:
            logger.info("no reachable unsettled vertex left after %d iterations", iterations)
            break
        iterations += 1

        if mark_settled(state, u):
            logger.debug("worker %d settled vertex %d at distance %s", rank, u, dist_u)
        relax(state, block, u, dist_u)

    logger.debug("worker %d done after %d iterations", rank, iterations)
    return state


def assemble_results(comm, state, coordinator=None):
    """Collect every worker's dist and pred arrays in rank order.

    Returns `(global_dist, global_pred)` on the coordinator and None on
    every other worker.  All workers must call this.
    """
    holders = [r for r, held in enumerate(comm.allgather(coordinator is not None)) if held]
    if len(holders) != 1:
        raise RuntimeError("expected exactly one coordinator, found %d" % len(holders))
    root = holders[0]
    n = state.size * comm.Get_size()
    global_dist = global_pred = None
    if coordinator is not None:
        global_dist = np.empty(n, dtype=np.float64)
        global_pred = np.empty(n, dtype=np.int64)
    comm.Gather(state.dist, global_dist, root=root)
    comm.Gather(state.pred, global_pred, root=root)
    if coordinator is None:
        return None
    return global_dist, global_pred


def dijkstra_sequential(D, source=SOURCE):
    """Heap-based single-process Dijkstra over a dense matrix, for checking results."""
    D = np.asarray(D, dtype=np.float64)
    n = D.shape[0]
    dist = np.full(n, np.inf)
    pred = np.full(n, NO_PREDECESSOR, dtype=np.int64)
    visited = np.zeros(n, dtype=bool)
    dist[source] = 0.0
    heap = [(0.0, source)]

    while heap:
        d, u = heapq.heappop(heap)
        if visited[u]:
            continue
        visited[u] = True
        for v in np.flatnonzero(np.isfinite(D[u])):
            if not visited[v] and d + D[u, v] < dist[v]:
                dist[v] = d + D[u, v]
                pred[v] = u
                heapq.heappush(heap, (dist[v], int(v)))

    return dist, pred
