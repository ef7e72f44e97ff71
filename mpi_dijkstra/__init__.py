from mpi_dijkstra.errors import DijkstraError, GraphError, PartitionError, CommAborted
from mpi_dijkstra.graph import INFINITY, read_matrix, load_matrix, generate_graph
from mpi_dijkstra.partition import MatrixBlock, partition_columns, owner_of
from mpi_dijkstra.comm import ThreadComm, Coordinator, run_workers
from mpi_dijkstra.dijkstra import (
    SOURCE, NO_VERTEX, NO_PREDECESSOR, dijkstra_parallel, assemble_results,
    dijkstra_sequential,
)

__version__ = '0.1.0'
