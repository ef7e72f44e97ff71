# parallel_script.py
import argparse
import logging
import os
import sys

import numpy as np
from mpi4py import MPI

from mpi_dijkstra.comm import Coordinator
from mpi_dijkstra.dijkstra import dijkstra_parallel, assemble_results
from mpi_dijkstra.errors import DijkstraError
from mpi_dijkstra.graph import load_matrix
from mpi_dijkstra.log import setup_logging
from mpi_dijkstra.partition import partition_columns
from mpi_dijkstra.report import write_report, append_timing_row

COORDINATOR_RANK = 0

logger = logging.getLogger('mpi_dijkstra.parallel_script')


def parse_options(comm, argv=None):
    parser = argparse.ArgumentParser(
        description='Single-source shortest paths from vertex 0 with column-partitioned Dijkstra.')
    parser.add_argument('input', help='adjacency matrix: text (n, then n*n weights) or .npy')
    parser.add_argument('--output', default='dijkstra_output.txt',
                        help='distance and path report')
    parser.add_argument('--result-dir', default=None,
                        help='save parallel_dist_<p>.npy and parallel_pred_<p>.npy here')
    parser.add_argument('--timing-n', default=None,
                        help='append "n, t_w_comm, t_wo_comm" to this CSV')
    parser.add_argument('--timing-p', default=None,
                        help='append "p, t_w_comm, t_wo_comm" to this CSV')
    parser.add_argument('--quiet', action='store_true', help='do not echo paths to stdout')
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])

    args = None
    try:
        if comm.Get_rank() == COORDINATOR_RANK:
            args = parser.parse_args(argv)
    finally:
        args = comm.bcast(args, root=COORDINATOR_RANK)

    if args is None:
        sys.exit(0)
    return args


def distribute_blocks(comm, coordinator, path):
    """Read and validate the matrix on the coordinator, then hand each worker its columns.

    A bad input or a vertex count that does not divide evenly is reported to
    every worker before anything is scattered.
    """
    blocks = None
    error = None
    if coordinator is not None:
        try:
            D = load_matrix(path)
            blocks = partition_columns(D, comm.Get_size())
            logger.info("read %d vertices, %d columns per worker",
                        D.shape[0], blocks[0].cols)
        except (DijkstraError, OSError) as e:
            error = str(e)
        except Exception as e:
            # the other ranks are already waiting in the bcast below
            logger.exception("could not prepare the matrix blocks")
            error = "%s: %s" % (type(e).__name__, e)

    error = comm.bcast(error, root=COORDINATOR_RANK)
    if error is not None:
        raise DijkstraError(error)
    return comm.scatter(blocks, root=COORDINATOR_RANK)


def publish_results(coordinator, args, size, global_dist, global_pred, timing):
    total_time, comm_time = timing
    with open(args.output, 'w') as f:
        write_report(f, global_dist, global_pred, timing)
    if not args.quiet:
        with open(args.output) as f:
            print(f.read(), end='')

    if args.result_dir:
        os.makedirs(args.result_dir, exist_ok=True)
        np.save(os.path.join(args.result_dir, f"parallel_dist_{size}.npy"), global_dist)
        np.save(os.path.join(args.result_dir, f"parallel_pred_{size}.npy"), global_pred)
    if args.timing_n:
        append_timing_row(args.timing_n, len(global_dist), total_time, comm_time)
    if args.timing_p:
        append_timing_row(args.timing_p, size, total_time, comm_time)

    logger.info("%r wrote %s", coordinator, args.output)
    print(f"Time with {size} processes: {total_time:.4f} seconds")


def dijkstra_mpi(comm, args):
    size = comm.Get_size()
    coordinator = Coordinator.elect(comm, COORDINATOR_RANK)

    block = distribute_blocks(comm, coordinator, args.input)

    comm.Barrier()
    start = MPI.Wtime()
    state = dijkstra_parallel(comm, block)

    gather_start = MPI.Wtime()
    result = assemble_results(comm, state, coordinator)
    end = MPI.Wtime()

    total_time = end - start
    comm_time = end - gather_start

    if coordinator is not None:
        global_dist, global_pred = result
        publish_results(coordinator, args, size, global_dist, global_pred,
                        (total_time, comm_time))
        return total_time
    return None


if __name__ == "__main__":
    comm = MPI.COMM_WORLD
    args = parse_options(comm)
    setup_logging(comm.Get_rank(), getattr(logging, args.log_level))
    try:
        dijkstra_mpi(comm, args)
    except DijkstraError as e:
        logger.error("%s", e)
        sys.exit(1)
