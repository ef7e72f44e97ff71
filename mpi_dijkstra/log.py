import logging
import sys

LOG_FORMAT = '%(asctime)-15s [%(levelname)s] [rank %(rank)s] [%(name)-9s:%(lineno)d] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

ROOT_LOGGER = 'mpi_dijkstra'


class RankFilter(logging.Filter):
    """Stamp every record with the worker rank it came from."""

    def __init__(self, rank):
        logging.Filter.__init__(self)
        self.rank = rank

    def filter(self, record):
        record.rank = self.rank
        return True


def setup_logging(rank=0, level=logging.INFO, stream=None):
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler.addFilter(RankFilter(rank))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
