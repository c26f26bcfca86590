"""Tests for the experiment driver."""

import json
import logging

import numpy as np
import pandas as pd
import pytest

import run_experiments
from run_experiments import (
    DEFAULT_CONFIG,
    amortized_cost_analysis,
    demo_sequence,
    generate_access_pattern,
    load_config,
    memory_usage_analysis,
    plot_rotations,
    run_access_pattern,
    run_experiment,
    save_results,
    stability_over_multiple_runs,
    traverse_tree,
)
from splay_tree import SplayTree


def test_demo_sequence_reports_each_root():
    assert demo_sequence() == [1, 10, 4, 7]


def test_demo_sequence_single_node():
    assert demo_sequence(1, (1, 1)) == [1, 1]


@pytest.mark.parametrize("pattern_type", DEFAULT_CONFIG['patterns'])
def test_access_patterns_stay_in_key_range(pattern_type):
    rng = np.random.default_rng(11)
    pattern = generate_access_pattern(pattern_type, 50, 300, rng)

    assert len(pattern) == 300
    assert all(isinstance(key, int) for key in pattern)
    assert min(pattern) >= 1
    assert max(pattern) <= 50


def test_sequential_pattern_cycles_through_keys():
    rng = np.random.default_rng(0)
    assert generate_access_pattern('sequential', 3, 7, rng) == [1, 2, 3, 1, 2, 3, 1]


def test_access_pattern_is_reproducible():
    first = generate_access_pattern('zipfian', 100, 200, np.random.default_rng(5))
    second = generate_access_pattern('zipfian', 100, 200, np.random.default_rng(5))
    assert first == second


def test_unknown_pattern_falls_back_to_uniform(caplog):
    rng = np.random.default_rng(0)
    with caplog.at_level(logging.WARNING, logger='ExperimentLogger'):
        pattern = generate_access_pattern('spiral', 10, 20, rng)

    assert len(pattern) == 20
    assert "Unknown pattern type: spiral" in caplog.text


def test_access_pattern_requires_keys():
    with pytest.raises(ValueError):
        generate_access_pattern('uniform', 0, 5, np.random.default_rng(0))


def test_traverse_tree_reports_depths():
    tree = SplayTree(3)
    depths = {tree.nodes[index].key: depth for index, depth in traverse_tree(tree)}
    assert depths == {3: 0, 2: 1, 1: 2}
    assert list(traverse_tree(SplayTree(0))) == []


def test_run_access_pattern_metrics():
    tree = SplayTree(3)
    metrics = run_access_pattern(tree, [1])

    assert metrics['accesses'] == 1
    assert metrics['rotations'] == 2
    assert metrics['rotations_per_access'] == 2.0
    assert metrics['avg_depth'] == pytest.approx(1.0)
    assert metrics['runtime_seconds'] >= 0.0


def test_run_experiment_records_size_and_pattern():
    result = run_experiment(32, 'uniform', 100, seed=1)

    assert result['size'] == 32
    assert result['pattern'] == 'uniform'
    assert result['accesses'] == 100
    assert result['rotations'] > 0


def test_amortized_cost_analysis_fits_log_size():
    results = [
        {'size': size, 'pattern': 'synthetic', 'rotations_per_access': float(np.log2(size))}
        for size in (4, 16, 64)
    ]
    results.append({'size': 8, 'pattern': 'lonely', 'rotations_per_access': 1.0})

    analysis = amortized_cost_analysis(results)

    assert set(analysis) == {'synthetic'}
    assert analysis['synthetic']['slope'] == pytest.approx(1.0)
    assert analysis['synthetic']['intercept'] == pytest.approx(0.0, abs=1e-9)
    assert analysis['synthetic']['r_value'] == pytest.approx(1.0)


def test_stability_of_sequential_pattern_is_exact():
    stability = stability_over_multiple_runs('sequential', 16, 64, n_runs=3, seed=0)

    assert len(stability['runs']) == 3
    assert stability['std'] == 0.0
    assert stability['mean'] == stability['runs'][0]


def test_memory_usage_analysis_returns_megabytes():
    assert isinstance(memory_usage_analysis(1000), float)


def test_load_config_defaults_are_a_copy():
    config = load_config()
    config['seed'] = 99
    assert DEFAULT_CONFIG['seed'] == 0


def test_load_config_list_values_are_independent():
    config = load_config()
    config['sizes'].append(8192)
    config['patterns'].clear()

    assert 8192 not in DEFAULT_CONFIG['sizes']
    assert DEFAULT_CONFIG['patterns']


def test_load_config_overrides(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'sizes': [8], 'n_accesses': 10}))

    config = load_config(str(path))

    assert config['sizes'] == [8]
    assert config['n_accesses'] == 10
    assert config['patterns'] == DEFAULT_CONFIG['patterns']


def test_load_config_rejects_unknown_keys(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'use_cache': True}))

    with pytest.raises(ValueError):
        load_config(str(path))


def test_save_results_converts_numpy_scalars(tmp_path):
    path = tmp_path / 'results.json'
    save_results({'mean': np.float64(1.5), 'count': np.int64(3)}, str(path))

    assert json.loads(path.read_text()) == {'mean': 1.5, 'count': 3}


def test_save_results_reraises_on_failure(tmp_path):
    with pytest.raises(OSError):
        save_results({}, str(tmp_path / 'missing' / 'results.json'))


def test_plot_rotations_writes_figure(tmp_path):
    df = pd.DataFrame([
        {'size': 4, 'pattern': 'uniform', 'rotations_per_access': 1.0},
        {'size': 8, 'pattern': 'uniform', 'rotations_per_access': 1.5},
    ])
    path = tmp_path / 'plot.png'

    plot_rotations(df, str(path))

    assert path.exists()


def test_main_writes_all_results(tmp_path):
    results_dir = tmp_path / 'results'
    config_path = tmp_path / 'config.json'
    config_path.write_text(json.dumps({
        'sizes': [4, 8],
        'n_accesses': 30,
        'patterns': ['sequential', 'uniform'],
        'n_runs': 2,
        'results_dir': str(results_dir),
    }))
    logger = logging.getLogger('ExperimentLogger')
    handlers_before = list(logger.handlers)

    try:
        run_experiments.main(str(config_path))
    finally:
        for handler in logger.handlers[len(handlers_before):]:
            logger.removeHandler(handler)
            handler.close()

    df = pd.read_csv(results_dir / 'experiments.csv')
    assert len(df) == 4
    assert set(df['pattern']) == {'sequential', 'uniform'}
    for name in ('amortized_analysis.json', 'memory_usage.json', 'stability.json'):
        assert (results_dir / name).exists()
    assert (results_dir / 'visualizations' / 'rotations_per_access.png').exists()
    assert set(json.loads((results_dir / 'stability.json').read_text())) == {'sequential', 'uniform'}
