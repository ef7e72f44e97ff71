import unittest
from unittest import mock

import numpy as np

from mpi_dijkstra.comm import Coordinator, run_workers
from mpi_dijkstra.dijkstra import (
    NO_PREDECESSOR, NO_VERTEX, LocalState, init_local_state, find_min_dist,
    local_candidate, reduce_candidates, mark_settled, relax, dijkstra_parallel,
    assemble_results, dijkstra_sequential,
)
from mpi_dijkstra import dijkstra
from mpi_dijkstra.errors import CommAborted, PartitionError
from mpi_dijkstra.graph import generate_graph
from mpi_dijkstra.partition import MatrixBlock, partition_columns
from mpi_dijkstra.report import reconstruct_path

INF = np.inf

SAMPLE = np.array([
    [0, 1, 4, INF, INF],
    [1, 0, 2, 5, INF],
    [4, 2, 0, 1, 1],
    [INF, 5, 1, 0, 3],
    [INF, INF, 1, 3, 0],
])


def solve(D, p):
    """Run the parallel solver on p in-process workers; return the coordinator's result."""
    blocks = partition_columns(D, p)

    def work(comm):
        state = dijkstra_parallel(comm, blocks[comm.Get_rank()])
        return assemble_results(comm, state, Coordinator.elect(comm))

    results = run_workers(p, work)
    for other in results[1:]:
        assert other is None
    return results[0]


def divisors(n):
    return [p for p in range(1, n + 1) if n % p == 0]


def path_length(D, path):
    return sum(D[u, v] for u, v in zip(path, path[1:]))


class TestLocalSteps(unittest.TestCase):

    def make_state(self, dist, settled, first_vertex=0):
        n = len(dist)
        return LocalState(np.array(dist, dtype=np.float64),
                          np.zeros(n, dtype=np.int64),
                          np.array(settled, dtype=bool), first_vertex)

    def test_init_on_source_owner(self):
        block = partition_columns(SAMPLE, 5)[0]
        state = init_local_state(block)
        self.assertTrue(state.settled[0])
        self.assertEqual(state.dist[0], 0)
        self.assertEqual(state.pred[0], NO_PREDECESSOR)

    def test_init_elsewhere(self):
        block = partition_columns(SAMPLE, 5)[3]
        state = init_local_state(block)
        self.assertFalse(state.settled.any())
        self.assertEqual(state.dist[0], INF)
        # no edge from the source yet, so no predecessor either
        self.assertEqual(state.pred[0], NO_PREDECESSOR)

        state = init_local_state(partition_columns(SAMPLE, 5)[2])
        self.assertEqual((state.dist[0], state.pred[0]), (4, 0))

    def test_find_min_dist_skips_settled_and_breaks_ties_low(self):
        state = self.make_state([0, 3, 1, 1], [True, False, False, False])
        self.assertEqual(find_min_dist(state), 2)
        state.settled[2] = True
        self.assertEqual(find_min_dist(state), 3)

    def test_find_min_dist_none(self):
        self.assertEqual(find_min_dist(self.make_state([0, 2], [True, True])), NO_VERTEX)
        self.assertEqual(find_min_dist(self.make_state([INF, INF], [False, False])), NO_VERTEX)

    def test_local_candidate_uses_global_ids(self):
        state = self.make_state([5, 2], [False, False], first_vertex=6)
        self.assertEqual(local_candidate(state), (2.0, 7))
        state.settled[:] = True
        self.assertEqual(local_candidate(state), (INF, NO_VERTEX))

    def test_reduction_ties_go_to_lowest_vertex(self):
        self.assertEqual(reduce_candidates([(3.0, 9), (3.0, 4), (5.0, 1)]), (3.0, 4))
        self.assertEqual(reduce_candidates([(INF, NO_VERTEX), (2.0, 8)]), (2.0, 8))
        self.assertEqual(reduce_candidates([(INF, NO_VERTEX)] * 3), (INF, NO_VERTEX))

    def test_mark_settled_only_on_owner(self):
        state = self.make_state([1, 2], [False, False], first_vertex=4)
        self.assertFalse(mark_settled(state, 3))
        self.assertTrue(mark_settled(state, 5))
        self.assertEqual(list(state.settled), [False, True])

    def test_relax(self):
        # owned vertices 2 and 3; relaxing through vertex 1 at distance 1
        block = partition_columns(SAMPLE[:4, :4], 2)[1]
        state = init_local_state(block)
        self.assertEqual(relax(state, block, 1, 1.0), 2)
        np.testing.assert_array_equal(state.dist, [3, 6])
        np.testing.assert_array_equal(state.pred, [1, 1])

    def test_relax_leaves_settled_alone(self):
        block = MatrixBlock.from_columns(np.array([[0.0, 9.0], [1.0, 0.0]]))
        state = self.make_state([0, 9], [True, True])
        self.assertEqual(relax(state, block, 1, 0.0), 0)
        np.testing.assert_array_equal(state.dist, [0, 9])


class TestDijkstraParallel(unittest.TestCase):

    def test_sample_graph(self):
        for p in (1, 5):
            dist, pred = solve(SAMPLE, p)
            np.testing.assert_array_equal(dist, [0, 1, 3, 4, 4])
            path = reconstruct_path(pred, 4)
            self.assertEqual(path[0], 0)
            self.assertEqual(path[-1], 4)
            self.assertEqual(path_length(SAMPLE, path), 4)

    def test_isolated_vertex(self):
        D = generate_graph(6, seed=3, density=0.8)
        D[3, :] = INF
        D[:, 3] = INF
        D[3, 3] = 0
        for p in divisors(6):
            dist, pred = solve(D, p)
            self.assertEqual(dist[3], INF)
            self.assertEqual(pred[3], NO_PREDECESSOR)
            self.assertIsNone(reconstruct_path(pred, 3))

    def test_nothing_reachable(self):
        D = np.full((4, 4), INF)
        np.fill_diagonal(D, 0)
        for p in divisors(4):
            dist, pred = solve(D, p)
            np.testing.assert_array_equal(dist, [0, INF, INF, INF])
            np.testing.assert_array_equal(pred, [NO_PREDECESSOR] * 4)

    def test_single_vertex(self):
        dist, pred = solve(np.zeros((1, 1)), 1)
        np.testing.assert_array_equal(dist, [0])
        np.testing.assert_array_equal(pred, [NO_PREDECESSOR])

    def test_single_worker_matches_sequential(self):
        for seed in range(25):
            n = 2 + seed % 11
            D = generate_graph(n, seed=seed, density=0.2 + 0.03 * seed, max_weight=10)
            dist, _ = solve(D, 1)
            expected, _ = dijkstra_sequential(D)
            np.testing.assert_array_equal(dist, expected, err_msg="seed %d" % seed)

    def test_worker_count_does_not_change_result(self):
        for seed in range(6):
            D = generate_graph(12, seed=100 + seed, density=0.3, max_weight=5)
            expected, _ = dijkstra_sequential(D)
            base_dist, base_pred = solve(D, 1)
            for p in divisors(12):
                dist, pred = solve(D, p)
                np.testing.assert_array_equal(dist, expected)
                np.testing.assert_array_equal(pred, base_pred)

    def test_properties_on_random_graphs(self):
        for seed in range(10):
            D = generate_graph(8, seed=200 + seed, density=0.4)
            dist, pred = solve(D, 4)
            self.assertEqual(dist[0], 0)
            for u, v in zip(*np.nonzero(np.isfinite(D))):
                self.assertLessEqual(dist[v], dist[u] + D[u, v])
            for v in range(1, 8):
                path = reconstruct_path(pred, v)
                if np.isinf(dist[v]):
                    self.assertIsNone(path)
                else:
                    self.assertEqual(path_length(D, path), dist[v])

    def test_repeated_runs_are_identical(self):
        D = generate_graph(10, seed=7, density=0.5, max_weight=4)
        first = solve(D, 5)
        second = solve(D, 5)
        self.assertEqual(first[0].tobytes(), second[0].tobytes())
        self.assertEqual(first[1].tobytes(), second[1].tobytes())

    def test_uneven_partition_is_rejected(self):
        self.assertRaises(PartitionError, solve, SAMPLE, 2)

    def test_assemble_needs_one_coordinator(self):
        blocks = partition_columns(SAMPLE, 5)

        def work(comm):
            state = init_local_state(blocks[comm.Get_rank()])
            return assemble_results(comm, state, None)

        self.assertRaises(RuntimeError, run_workers, 5, work)

    def test_allocation_failure_stops_every_worker(self):
        blocks = partition_columns(SAMPLE, 5)
        real_init = dijkstra.init_local_state
        outcome = [None] * 5

        def init_or_fail(block):
            if block.first_vertex == 2:
                raise MemoryError()
            return real_init(block)

        def work(comm):
            try:
                return dijkstra_parallel(comm, blocks[comm.Get_rank()])
            except Exception as e:
                outcome[comm.Get_rank()] = e
                raise

        with mock.patch.object(dijkstra, 'init_local_state', side_effect=init_or_fail):
            self.assertRaises(MemoryError, run_workers, 5, work)
        self.assertIsInstance(outcome[2], CommAborted)
        self.assertIsInstance(outcome[2].__cause__, MemoryError)
        for rank in (0, 1, 3, 4):
            self.assertIsInstance(outcome[rank], CommAborted)


class TestSequentialReference(unittest.TestCase):

    def test_sample_graph(self):
        dist, pred = dijkstra_sequential(SAMPLE)
        np.testing.assert_array_equal(dist, [0, 1, 3, 4, 4])
        self.assertEqual(pred[0], NO_PREDECESSOR)


if __name__ == '__main__':
    unittest.main()
