class DijkstraError(Exception):
    pass


class GraphError(DijkstraError, ValueError):
    """Malformed adjacency matrix input."""


class PartitionError(DijkstraError, ValueError):
    """The matrix cannot be split evenly across the workers."""


class CommAborted(DijkstraError, RuntimeError):
    """A collective was torn down because some worker failed or aborted."""

    def __init__(self, errorcode=1, reason=None):
        self.errorcode = errorcode
        self.reason = reason
        msg = "communicator aborted (errorcode %d)" % errorcode
        if reason:
            msg += ": %s" % reason
        RuntimeError.__init__(self, msg)
