# run_experiments.py

import numpy as np
from tqdm import tqdm
from splay_tree import SplayTree, SplayTreeError
import pandas as pd
import copy
import os
import sys
import json
import logging
import gc
import time
import matplotlib.pyplot as plt
from typing import Dict, List, Optional, Sequence
import scipy.stats as stats
import psutil

# ==========================
# 1. Logging Configuration
# ==========================

logger = logging.getLogger('ExperimentLogger')

def setup_logging(log_file: str):
    """
    Sets up logging to both console and file with detailed formatting.

    Parameters:
        log_file (str): Path to the log file.
    """
    logger = logging.getLogger('ExperimentLogger')
    logger.setLevel(logging.DEBUG)  # Capture all levels

    # Formatter for detailed logs
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

    # Console handler for INFO level and above
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(formatter)

    # File handler for DEBUG level and above
    fh = logging.FileHandler(log_file)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    # Avoid duplicate logs
    if not logger.handlers:
        logger.addHandler(ch)
        logger.addHandler(fh)
    else:
        fh.close()

    return logger

# ==========================
# 2. Configuration and Persistence
# ==========================

DEFAULT_CONFIG = {
    'sizes': [16, 64, 256, 1024, 4096],
    'n_accesses': 5000,
    'patterns': ['sequential', 'uniform', 'zipfian', 'temporal', 'cluster-based', 'random_walk', 'bursty'],
    'seed': 0,
    'n_runs': 5,
    'results_dir': 'results',
}

def load_config(path: Optional[str] = None) -> dict:
    """
    Returns the experiment configuration, optionally overridden by a JSON file.

    Parameters:
        path (str): Path to a JSON file whose keys override DEFAULT_CONFIG.

    Returns:
        dict: The merged configuration.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path is None:
        return config
    try:
        with open(path, 'r') as f:
            overrides = json.load(f)
    except Exception as e:
        logger.error(f"Failed to load configuration from '{path}': {e}")
        raise e
    unknown = set(overrides) - set(DEFAULT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    config.update(overrides)
    logger.info(f"Configuration loaded from '{path}'.")
    return config

def _to_builtin(obj):
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

def save_results(data, filepath: str):
    """
    Saves data to a JSON file.

    Parameters:
        data (dict): The data to save.
        filepath (str): The path to the JSON file.
    """
    try:
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=4, default=_to_builtin)
        logger.info(f"Results saved successfully to '{filepath}'.")
    except Exception as e:
        logger.error(f"Failed to save results to '{filepath}': {e}")
        raise e

# ==========================
# 3. Demonstration
# ==========================

def demo_sequence(n: int = 10, keys: Sequence[int] = (1, 10, 4, 7)) -> List[int]:
    """
    Splays a fixed key sequence on a fresh chain of size n, checking the tree after every access.

    Parameters:
        n (int): Tree size.
        keys (Sequence[int]): Keys to splay, in order.

    Returns:
        List[int]: Root key observed after each splay.
    """
    roots = []
    with SplayTree(n) as tree:
        tree.check_invariants()
        logger.debug(f"Initial tree:\n{tree.dump()}")
        for key in keys:
            tree.splay_by_key(key)
            if tree.root_key != key:
                raise SplayTreeError(f"Splay of key {key} left key {tree.root_key} at the root")
            tree.check_invariants()
            roots.append(tree.root_key)
            logger.debug(f"After splaying {key}:\n{tree.dump()}")
    logger.info(f"Splay demo passed for keys {list(keys)} on a tree of size {n}.")
    return roots

# ==========================
# 4. Access Patterns and Measurement
# ==========================

def generate_access_pattern(pattern_type: str, size: int, n: int, rng: np.random.Generator) -> List[int]:
    """
    Generates different types of access patterns for experimentation.

    Parameters:
        pattern_type (str): Type of access pattern to generate.
        size (int): Range of keys (1 to size).
        n (int): Number of accesses to generate.
        rng (np.random.Generator): Source of randomness.

    Returns:
        List[int]: List of keys to access.
    """
    if size < 1:
        raise ValueError(f"Access patterns need at least one key, got size {size}")
    logger.debug(f"Generating access pattern: {pattern_type}, Size: {size}, Number of accesses: {n}")
    keys = np.arange(1, size + 1)
    if pattern_type == 'sequential':
        pattern = np.arange(n) % size + 1
    elif pattern_type == 'uniform':
        pattern = rng.integers(1, size + 1, n)
    elif pattern_type == 'zipfian':
        probabilities = rng.zipf(2, size).astype(float)
        probabilities = probabilities / probabilities.sum()
        pattern = rng.choice(keys, n, p=probabilities)
    elif pattern_type == 'temporal':
        access_pattern = []
        recent_items = []
        for _ in range(n):
            if recent_items and rng.random() < 0.7:
                access_pattern.append(recent_items[rng.integers(len(recent_items))])
            else:
                key = int(rng.integers(1, size + 1))
                access_pattern.append(key)
                if key not in recent_items:
                    recent_items.append(key)
                if len(recent_items) > 100:
                    recent_items.pop(0)
        pattern = np.array(access_pattern, dtype=int)
    elif pattern_type == 'cluster-based':
        cluster_center = int(rng.integers(1, size + 1))
        low, high = max(1, cluster_center - 10), min(size, cluster_center + 10)
        pattern = rng.integers(low, high + 1, n)
    elif pattern_type == 'random_walk':
        access_pattern = [int(rng.integers(1, size + 1))]
        for _ in range(n - 1):
            next_key = access_pattern[-1] + int(rng.choice([-1, 1]))
            access_pattern.append(max(1, min(size, next_key)))
        pattern = np.array(access_pattern[:n], dtype=int)
    elif pattern_type == 'bursty':
        burst_prob = 0.8
        access_pattern = []
        last_accessed = None
        for _ in range(n):
            if last_accessed is not None and rng.random() < burst_prob:
                access_pattern.append(last_accessed)
            else:
                last_accessed = int(rng.integers(1, size + 1))
                access_pattern.append(last_accessed)
        pattern = np.array(access_pattern, dtype=int)
    else:
        logger.warning(f"Unknown pattern type: {pattern_type}. Defaulting to uniform pattern.")
        pattern = rng.integers(1, size + 1, n)
    logger.debug(f"Access pattern generated with {len(pattern)} accesses.")
    return [int(key) for key in pattern]

def traverse_tree(tree: SplayTree):
    """
    Generator walking the tree from its root.

    Parameters:
        tree (SplayTree): The splay tree.

    Yields:
        Tuple[int, int]: Arena index and depth of each node.
    """
    if tree.root is None:
        return
    stack = [(tree.root, 0)]
    while stack:
        index, depth = stack.pop()
        yield index, depth
        node = tree.nodes[index]
        for child in (node.left, node.right):
            if child is not None:
                stack.append((child, depth + 1))

def run_access_pattern(tree: SplayTree, pattern: List[int], desc: str = "Splaying") -> Dict[str, float]:
    """
    Splays every key of the pattern and records rotation, depth and runtime metrics.

    Parameters:
        tree (SplayTree): The tree to access.
        pattern (List[int]): Keys to splay, in order.
        desc (str): Progress bar label.

    Returns:
        dict: Metrics of the run.
    """
    rotations_before = tree.total_rotations
    start_time = time.perf_counter()
    for key in tqdm(pattern, desc=desc, leave=False):
        tree.splay_by_key(key)
    runtime = time.perf_counter() - start_time

    rotations = tree.total_rotations - rotations_before
    depths = [depth for _, depth in traverse_tree(tree)]
    return {
        'accesses': len(pattern),
        'rotations': rotations,
        'rotations_per_access': rotations / len(pattern) if pattern else 0.0,
        'avg_depth': float(np.mean(depths)) if depths else 0.0,
        'runtime_seconds': runtime,
    }

def run_experiment(size: int, pattern_type: str, n_accesses: int, seed: int) -> dict:
    """
    Builds a fresh chain of the given size and runs one access pattern against it.

    Parameters:
        size (int): Tree size.
        pattern_type (str): Access pattern name.
        n_accesses (int): Number of accesses.
        seed (int): Seed for the access pattern.

    Returns:
        dict: Size, pattern and the metrics of run_access_pattern.
    """
    rng = np.random.default_rng(seed)
    pattern = generate_access_pattern(pattern_type, size, n_accesses, rng)
    with SplayTree(size) as tree:
        metrics = run_access_pattern(tree, pattern, desc=f"{pattern_type} (n={size})")
        tree.check_invariants()
    result = {'size': size, 'pattern': pattern_type}
    result.update(metrics)
    logger.info(f"Size {size}, pattern '{pattern_type}': "
                f"Rotations/Access = {result['rotations_per_access']:.4f}, "
                f"Avg Depth = {result['avg_depth']:.4f}, Runtime = {result['runtime_seconds']:.4f}s")
    return result

# ==========================
# 5. Analysis Functions
# ==========================

def amortized_cost_analysis(results: List[dict]) -> dict:
    """
    Fits rotations per access against log2 of the tree size, per access pattern.

    Parameters:
        results (List[dict]): Results of run_experiment.

    Returns:
        dict: Slope, intercept and correlation of the fit for each pattern.
    """
    logger.info("Performing amortized cost analysis.")
    df = pd.DataFrame(results)
    analysis = {}
    for pattern, group in df.groupby('pattern'):
        if group['size'].nunique() < 2:
            logger.warning(f"Pattern '{pattern}' has fewer than two tree sizes, skipping fit.")
            continue
        fit = stats.linregress(np.log2(group['size'].astype(float)), group['rotations_per_access'])
        analysis[pattern] = {
            'slope': float(fit.slope),
            'intercept': float(fit.intercept),
            'r_value': float(fit.rvalue),
        }
        logger.debug(f"Fit for '{pattern}': slope = {fit.slope:.4f}, r = {fit.rvalue:.4f}")
    return analysis

def memory_usage_analysis(size: int) -> float:
    """
    Analyzes the memory used by a tree of the given size.

    Parameters:
        size (int): Tree size.

    Returns:
        float: Memory used in MB.
    """
    logger.info(f"Analyzing memory usage for a tree of size {size}.")
    gc.collect()
    process = psutil.Process(os.getpid())
    mem_before = process.memory_info().rss / (1024 ** 2)  # in MB
    tree = SplayTree(size)
    mem_after = process.memory_info().rss / (1024 ** 2)  # in MB
    memory_used = mem_after - mem_before
    # Clean up
    tree.release()
    del tree
    gc.collect()
    logger.info(f"Memory Usage: {memory_used:.4f} MB.")
    return memory_used

def stability_over_multiple_runs(pattern_type: str, size: int, n_accesses: int, n_runs: int = 5, seed: int = 0) -> dict:
    """
    Checks how much rotations per access vary across differently seeded runs.

    Parameters:
        pattern_type (str): Access pattern name.
        size (int): Tree size.
        n_accesses (int): Number of accesses per run.
        n_runs (int): Number of runs to perform.
        seed (int): Seed of the first run; run i uses seed + i.

    Returns:
        dict: Mean, standard deviation and per-run rotations per access.
    """
    logger.info(f"Assessing stability over {n_runs} runs.")
    scores = []
    for run in range(n_runs):
        result = run_experiment(size, pattern_type, n_accesses, seed + run)
        scores.append(result['rotations_per_access'])
        logger.debug(f"Run {run + 1}/{n_runs}: Rotations/Access = {scores[-1]:.4f}")
    mean_score = float(np.mean(scores)) if scores else 0.0
    std_score = float(np.std(scores)) if scores else 0.0
    logger.info(f"Stability assessment completed. Mean: {mean_score:.4f}, Std Dev: {std_score:.4f}")
    return {'mean': mean_score, 'std': std_score, 'runs': scores}

def plot_rotations(df: pd.DataFrame, filepath: str):
    """
    Plots rotations per access against tree size, one line per access pattern.

    Parameters:
        df (pd.DataFrame): Experiment results.
        filepath (str): Where to save the figure.
    """
    plt.figure(figsize=(10,6))
    for pattern, group in df.groupby('pattern'):
        group = group.sort_values('size')
        plt.plot(group['size'], group['rotations_per_access'], marker='o', label=pattern)
    plt.xscale('log', base=2)
    plt.title('Amortized Splay Cost')
    plt.xlabel('Tree Size')
    plt.ylabel('Rotations per Access')
    plt.legend()
    plt.tight_layout()
    plt.savefig(filepath)
    plt.close()
    logger.info(f"Rotation plot saved to '{filepath}'.")

# ==========================
# 6. Main Execution Flow
# ==========================

def main(config_path: Optional[str] = None):
    """
    Main function to run the demo and all experiments, and write their results.
    """
    config = load_config(config_path)
    results_dir = config['results_dir']
    os.makedirs(os.path.join(results_dir, 'visualizations'), exist_ok=True)
    os.makedirs(os.path.join(results_dir, 'logs'), exist_ok=True)
    setup_logging(os.path.join(results_dir, 'logs', 'experiment.log'))

    logger.info("=== Starting Splay Tree Experiments ===")

    demo_sequence()

    results = []
    for size in config['sizes']:
        for pattern_type in config['patterns']:
            results.append(run_experiment(size, pattern_type, config['n_accesses'], config['seed']))

    df = pd.DataFrame(results)
    csv_path = os.path.join(results_dir, 'experiments.csv')
    df.to_csv(csv_path, index=False)
    logger.info(f"Experiment table saved to '{csv_path}'.")

    save_results(amortized_cost_analysis(results), os.path.join(results_dir, 'amortized_analysis.json'))

    memory_results = {str(size): memory_usage_analysis(size) for size in config['sizes']}
    save_results(memory_results, os.path.join(results_dir, 'memory_usage.json'))

    largest = max(config['sizes'])
    stability_results = {
        pattern_type: stability_over_multiple_runs(
            pattern_type, largest, config['n_accesses'], config['n_runs'], config['seed'])
        for pattern_type in config['patterns']
    }
    save_results(stability_results, os.path.join(results_dir, 'stability.json'))

    plot_rotations(df, os.path.join(results_dir, 'visualizations', 'rotations_per_access.png'))

    logger.info("=== All experiments completed successfully! ===")

if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
