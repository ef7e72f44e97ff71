import csv
import os

import numpy as np

from mpi_dijkstra.dijkstra import SOURCE, NO_PREDECESSOR


def reconstruct_path(global_pred, v, source=SOURCE):
    """Vertices from `source` to `v` following predecessors, or None if unreachable."""
    n = len(global_pred)
    path = [v]
    w = v
    while w != source:
        w = int(global_pred[w])
        if w == NO_PREDECESSOR:
            return None
        path.append(w)
        if len(path) > n:
            raise ValueError("predecessor cycle through vertex %d" % v)
    path.reverse()
    return path


def format_distance(d):
    if np.isinf(d):
        return 'inf'
    return '%d' % d if float(d).is_integer() else '%g' % d


def format_dists(global_dist):
    lines = ['    v     dist 0->v', '  ----    ---------']
    for v in range(1, len(global_dist)):
        lines.append('    %d        %s' % (v, format_distance(global_dist[v])))
    return '\n'.join(lines) + '\n'


def format_paths(global_pred):
    lines = ['    v     Path 0->v', '  ----    ---------']
    for v in range(1, len(global_pred)):
        path = reconstruct_path(global_pred, v)
        if path is None:
            lines.append('    %d:    unreachable' % v)
        else:
            lines.append('    %d:    %s' % (v, ' '.join(str(w) for w in path)))
    return '\n'.join(lines) + '\n'


def write_report(stream, global_dist, global_pred, timing=None):
    stream.write(format_dists(global_dist))
    stream.write('\n')
    stream.write(format_paths(global_pred))
    stream.write('\n')
    if timing is not None:
        total_time, comm_time = timing
        stream.write('t_w_comm: %f s\n' % total_time)
        stream.write('t_wo_comm: %f s\n' % (total_time - comm_time))


def append_timing_row(path, key, total_time, comm_time):
    """Append `key, t_w_comm, t_wo_comm` to a CSV file, writing a header for new files."""
    new_file = not os.path.exists(path) or os.path.getsize(path) == 0
    with open(path, 'a', newline='') as f:
        writer = csv.writer(f)
        if new_file:
            writer.writerow(['key', 't_w_comm (s)', 't_wo_comm (s)'])
        writer.writerow([key, '%.6f' % total_time, '%.6f' % (total_time - comm_time)])
