"""In-process stand-in for an MPI communicator.

`ThreadComm` implements the subset of the mpi4py communicator API that the
solver uses, so the same worker code runs either under `mpiexec` with
`MPI.COMM_WORLD` or as `p` threads inside one interpreter.  Every collective
is a barrier plus a combine step over a shared slot table.
"""
import logging
import sys
import threading

import numpy as np

from mpi_dijkstra.errors import CommAborted

logger = logging.getLogger(__name__)


class _Group(object):

    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size)
        self.slots = [None] * size
        self.errorcode = None
        self.reason = None

    def abort(self, errorcode=1, reason=None):
        if self.errorcode is None:
            self.errorcode = errorcode
            self.reason = reason
        self.barrier.abort()


class ThreadComm(object):

    def __init__(self, group, rank):
        self._group = group
        self._rank = rank

    @classmethod
    def create(cls, size):
        """One communicator per rank, all sharing the same group."""
        if size <= 0:
            raise ValueError("communicator size must be positive, got %d" % size)
        group = _Group(size)
        return [cls(group, r) for r in range(size)]

    def Get_rank(self):
        return self._rank

    def Get_size(self):
        return self._group.size

    def _wait(self):
        try:
            self._group.barrier.wait()
        except threading.BrokenBarrierError:
            raise CommAborted(self._group.errorcode or 1, self._group.reason)

    def Barrier(self):
        self._wait()

    def Abort(self, errorcode=1):
        self._group.abort(errorcode, "rank %d called Abort" % self._rank)
        # keep whatever the caller was handling as the cause
        raise CommAborted(errorcode, self._group.reason) from sys.exc_info()[1]

    def allgather(self, sendobj):
        self._group.slots[self._rank] = sendobj
        self._wait()
        result = list(self._group.slots)
        # nobody may overwrite a slot before everyone has read the table
        self._wait()
        return result

    def gather(self, sendobj, root=0):
        result = self.allgather(sendobj)
        return result if self._rank == root else None

    def bcast(self, obj, root=0):
        return self.allgather(obj if self._rank == root else None)[root]

    def scatter(self, sendobj, root=0):
        if self._rank == root and len(sendobj) != self._group.size:
            self._group.abort(1, "scatter needs %d items" % self._group.size)
            raise CommAborted(1, self._group.reason)
        return self.allgather(sendobj if self._rank == root else None)[root][self._rank]

    def Gather(self, sendbuf, recvbuf, root=0):
        parts = self.gather(np.array(sendbuf, copy=True), root)
        if parts is not None:
            np.copyto(np.asarray(recvbuf).reshape(-1), np.concatenate(parts).reshape(-1))


class Coordinator(object):
    """Capability of the single worker that owns input and output.

    Only the elected rank receives an instance; everyone else gets None.
    """

    def __init__(self, rank=0):
        self.rank = rank

    @classmethod
    def elect(cls, comm, root=0):
        return cls(root) if comm.Get_rank() == root else None

    def __repr__(self):
        return '<Coordinator rank=%d>' % self.rank


def run_workers(size, target, *args):
    """Run `target(comm, *args)` on `size` threads and return results in rank order.

    If any worker raises, the group is aborted so the others leave their
    collectives, and the first failure is re-raised here.  A worker that
    called `Abort` while handling an exception reports that exception.
    """
    comms = ThreadComm.create(size)
    results = [None] * size
    errors = [None] * size

    def work(comm):
        rank = comm.Get_rank()
        try:
            results[rank] = target(comm, *args)
        except CommAborted as e:
            errors[rank] = e if e.__cause__ is None else e.__cause__
        except Exception as e:
            logger.error("worker %d failed: %s", rank, e)
            errors[rank] = e
            comm._group.abort(1, "rank %d failed: %s" % (rank, e))

    threads = [threading.Thread(target=work, args=(c,), name='worker-%d' % c.Get_rank())
               for c in comms]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    failures = [e for e in errors if e is not None]
    if failures:
        # prefer the root cause over the CommAborted it triggered elsewhere
        primary = [e for e in failures if not isinstance(e, CommAborted)]
        raise (primary or failures)[0]
    return results
