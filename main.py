import numpy as np
import sys
import time
import subprocess
import os
import csv
from statistics import mean, stdev
from math import sqrt

from mpi_dijkstra.dijkstra import dijkstra_sequential
from mpi_dijkstra.graph import generate_graph, save_matrix


def compare_results(sequential_result, parallel_result_file, num_processes):
    if os.path.exists(parallel_result_file):
        parallel_dist = np.load(parallel_result_file)
        if np.array_equal(sequential_result, parallel_dist):
            print(f"numprocs {num_processes} result ok.")
            return True
        print(f"numprocs {num_processes} result DIFFER.")
    else:
        print(f"numprocs {parallel_result_file} file not found.")
    return False


def run_parallel_version(input_file, output_dir, num_processes, sequential_result, num_repeats):
    times = []
    for run in range(num_repeats):
        command = ["mpiexec", "-np", str(num_processes),
                   "python", "parallel_script.py", input_file,
                   "--output", os.path.join(output_dir, f"dijkstra_output_{num_processes}.txt"),
                   "--result-dir", output_dir,
                   "--timing-n", os.path.join(output_dir, "dijkstra_graph_nT.csv"),
                   "--timing-p", os.path.join(output_dir, "dijkstra_graph_nCPUT.csv"),
                   "--quiet"]

        print(f"\nRun {run+1}/{num_repeats}: {' '.join(command)}")
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, check=True)
            print(result.stdout)
            for line in result.stdout.splitlines():
                if "Time with" in line and "processes" in line:
                    try:
                        time_str = line.split(":")[-1].strip().split(" ")[0]
                        times.append(float(time_str))
                    except ValueError:
                        print(f"Failed to parse time from line: {line}")
        except subprocess.CalledProcessError as e:
            print("Subprocess failed:")
            print(f"Stdout: {e.stdout}")
            print(f"Stderr: {e.stderr}")

    parallel_result_file = os.path.join(
        output_dir, f"parallel_dist_{num_processes}.npy")
    compare_results(sequential_result, parallel_result_file, num_processes)

    if times:
        mean_time = mean(times)
        stderr = stdev(times) / sqrt(num_repeats) if num_repeats > 1 else 0.0
        return mean_time, stderr
    return None, None


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print("Usage: python main.py <number_of_vertices> <max_number_of_processes> <num_repeats>")
        sys.exit(1)

    n = int(sys.argv[1])
    max_processes = int(sys.argv[2])
    num_repeats = int(sys.argv[3])

    output_dir = "dijkstra_output"
    os.makedirs(output_dir, exist_ok=True)
    print(f"All output files will be saved to: {output_dir}")

    print(f"Generating graph with {n} vertices...")
    graph = generate_graph(n)
    input_file = os.path.join(output_dir, "input_graph.txt")
    save_matrix(input_file, graph)

    print("\nRunning sequential Dijkstra algorithm...")
    start_time = time.time()
    seq_dist, _ = dijkstra_sequential(graph)
    seq_time = time.time() - start_time
    np.save(os.path.join(output_dir, "sequential_result.npy"), seq_dist)
    print(f"Sequential version time: {seq_time:.4f} seconds")

    parallel_stats = {}

    # the column partition needs every worker to get the same number of vertices
    process_counts = [p for p in range(1, max_processes + 1) if n % p == 0]
    skipped = [p for p in range(1, max_processes + 1) if n % p != 0]
    if skipped:
        print(f"\nSkipping process counts that do not divide {n}: {skipped}")

    print("\nRunning parallel Dijkstra algorithm with different number of processes...")
    for num_processes in process_counts:
        mean_time, stderr = run_parallel_version(
            input_file, output_dir, num_processes, seq_dist, num_repeats)
        if mean_time is not None:
            parallel_stats[num_processes] = (mean_time, stderr)

    print("\nExecution time summary:")
    print(f"Sequential version: {seq_time:.4f} seconds")
    for num_procs, (mean_time, stderr) in parallel_stats.items():
        print(
            f"Parallel ({num_procs} proc): mean = {mean_time:.4f}s, stderr = {stderr:.4f}s")

    csv_dir = "csv_result"
    os.makedirs(csv_dir, exist_ok=True)

    csv_filename = os.path.join(
        csv_dir, f"execution_times_n{n}_maxp{max_processes}.csv")
    with open(csv_filename, "w", newline='') as f:
        writer = csv.writer(f)
        writer.writerow(["numprocs", "mean_time (s)", "stderr (s)"])

        # sequential reference goes in as process count 0
        writer.writerow([0, f"{seq_time:.4f}", "0.0000"])

        for num_procs in sorted(parallel_stats.keys()):
            mean_time, stderr = parallel_stats[num_procs]
            writer.writerow([num_procs, f"{mean_time:.4f}", f"{stderr:.4f}"])
