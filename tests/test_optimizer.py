import math

import pytest

from rbdas.components.cost_model import CostModel
from rbdas.config import ConfigurationError, FitnessWeights, PsoConfig
from rbdas.models import PricingTier, Workflow
from rbdas.placement.hnspso import FitnessEvaluator, HnsPsoOptimizer, OptimizerState, optimize
from rbdas.placement.schedule import build_slots


def run(workflow, catalog, profiles, affinity, **kwargs):
    kwargs.setdefault("population_size", 20)
    kwargs.setdefault("iterations", 50)
    return optimize(workflow, catalog, profiles, affinity, deadline=workflow.deadline, seed=42, **kwargs)


def test_linear_workflow_is_reproducible(linear_workflow, catalog, affinity, classified_profiles):
    profiles = classified_profiles(linear_workflow)
    first = run(linear_workflow, catalog, profiles, affinity)
    second = run(linear_workflow, catalog, profiles, affinity)
    assert len(first) == 10
    assert set(first.assignment) == {f"t{i}" for i in range(10)}
    assert math.isfinite(first.fitness)
    assert first.assignment == second.assignment
    assert first.fitness == second.fitness
    assert first.history == second.history


def test_global_best_never_gets_worse(fork_join_workflow, catalog, affinity, classified_profiles):
    mapping = run(fork_join_workflow, catalog, classified_profiles(fork_join_workflow), affinity)
    assert len(mapping.history) == 50
    assert all(b <= a for a, b in zip(mapping.history, mapping.history[1:]))
    assert mapping.fitness == pytest.approx(mapping.history[-1])


def test_fitness_terms_are_non_negative(fork_join_workflow, catalog, affinity, classified_profiles):
    b = run(fork_join_workflow, catalog, classified_profiles(fork_join_workflow), affinity).breakdown
    assert b.cost >= 0 and b.deadline_penalty >= 0 and b.fragmentation >= 0
    assert 0.0 <= b.affinity <= 1.0
    assert b.fitness >= 0


def test_slot_indices_stay_in_range(fork_join_workflow, catalog, affinity, classified_profiles):
    mapping = run(fork_join_workflow, catalog, classified_profiles(fork_join_workflow), affinity)
    assert len(mapping.slots) == fork_join_workflow.max_parallel * len(catalog)
    assert all(0 <= s < len(mapping.slots) for s in mapping.assignment.values())
    assert mapping.vm_type_of("a") is mapping.slots[mapping.assignment["a"]].vm_type


def test_workers_do_not_change_the_result(fork_join_workflow, catalog, affinity, classified_profiles):
    profiles = classified_profiles(fork_join_workflow)
    serial = run(fork_join_workflow, catalog, profiles, affinity)
    threaded = run(fork_join_workflow, catalog, profiles, affinity, config=PsoConfig(workers=4))
    assert serial.assignment == threaded.assignment
    assert serial.fitness == threaded.fitness


def test_seeded_particle_bounds_the_result(linear_workflow, catalog, affinity, classified_profiles):
    profiles = classified_profiles(linear_workflow)
    initial = [0] * 10
    evaluator = FitnessEvaluator(linear_workflow, build_slots(catalog, 1), profiles, affinity, CostModel(),
                                 FitnessWeights(), linear_workflow.deadline, PricingTier.ON_DEMAND)
    mapping = run(linear_workflow, catalog, profiles, affinity, iterations=5, initial=initial)
    assert mapping.fitness <= evaluator(initial)


def test_utilization_fragmentation_metric(fork_join_workflow, catalog, affinity, classified_profiles):
    cfg = PsoConfig(fragmentation_metric="utilization")
    mapping = run(fork_join_workflow, catalog, classified_profiles(fork_join_workflow), affinity, config=cfg)
    assert 0.0 <= mapping.breakdown.fragmentation <= 1.0


def test_state_transitions(linear_workflow, catalog, affinity, classified_profiles):
    optimizer = HnsPsoOptimizer(config=PsoConfig(population_size=5, iterations=3))
    assert optimizer.state is OptimizerState.INITIALIZED
    optimizer.optimize(linear_workflow, catalog, classified_profiles(linear_workflow), affinity)
    assert optimizer.state is OptimizerState.CONVERGED


@pytest.mark.parametrize("cfg", [
    PsoConfig(population_size=0),
    PsoConfig(iterations=0),
    PsoConfig(population_size=-3),
    PsoConfig(fragmentation_metric="entropy"),
])
def test_bad_configuration_fails_before_work(cfg, linear_workflow, catalog, affinity, classified_profiles):
    optimizer = HnsPsoOptimizer(config=cfg)
    with pytest.raises(ConfigurationError):
        optimizer.optimize(linear_workflow, catalog, classified_profiles(linear_workflow), affinity)
    assert optimizer.state is OptimizerState.INITIALIZED


def test_module_level_rejects_bad_budget(linear_workflow, catalog, affinity, classified_profiles):
    with pytest.raises(ConfigurationError):
        run(linear_workflow, catalog, classified_profiles(linear_workflow), affinity, iterations=-1)


def test_empty_catalog_is_a_configuration_error(linear_workflow, affinity, classified_profiles):
    with pytest.raises(ConfigurationError):
        run(linear_workflow, [], classified_profiles(linear_workflow), affinity)


def test_empty_workflow(catalog, affinity):
    mapping = optimize(Workflow([]), catalog, {}, affinity, population_size=4, iterations=3)
    assert len(mapping) == 0
    assert mapping.fitness == 0.0


def test_missed_deadline_is_penalized(linear_workflow, catalog, affinity, classified_profiles):
    profiles = classified_profiles(linear_workflow)
    relaxed = run(linear_workflow, catalog, profiles, affinity)
    tight = optimize(linear_workflow, catalog, profiles, affinity, deadline=1.0, seed=42,
                     population_size=20, iterations=50)
    assert tight.breakdown.deadline_penalty > 0
    assert tight.fitness > relaxed.fitness


def test_module_level_keeps_config_budget(linear_workflow, catalog, affinity, classified_profiles):
    profiles = classified_profiles(linear_workflow)
    mapping = optimize(linear_workflow, catalog, profiles, affinity,
                       config=PsoConfig(population_size=6, iterations=7))
    assert len(mapping.history) == 7
    overridden = optimize(linear_workflow, catalog, profiles, affinity,
                          config=PsoConfig(population_size=6, iterations=7), iterations=3)
    assert len(overridden.history) == 3
