import math

import pytest

from rbdas.components.spot import SpotInterruptModel
from rbdas.config import SpotConfig
from rbdas.models import Checkpoint, PricingTier, VmInstance


@pytest.fixture
def spot_vm(catalog):
    return VmInstance("spot-0", catalog[0], PricingTier.SPOT, allocated=True)


def model(p, **kwargs):
    return SpotInterruptModel(SpotConfig(interruption_probability=p, **kwargs), seed=42)


def test_grace_period_protects_new_instances(spot_vm):
    m = model(1.0)
    assert not any(m.should_interrupt(spot_vm, t, 0.0) for t in range(0, 60))
    assert m.interruption_count == 0
    assert m.should_interrupt(spot_vm, 60.0, 0.0)


def test_start_time_defaults_to_instance(spot_vm):
    spot_vm.start_time = 1000.0
    assert not model(1.0).should_interrupt(spot_vm, 1030.0)


def test_zero_probability_never_interrupts(spot_vm):
    m = model(0.0)
    assert not any(m.should_interrupt(spot_vm, 60.0 + t, 0.0) for t in range(1000))


def test_certain_interruption_is_logged(spot_vm):
    m = model(1.0)
    assert m.should_interrupt(spot_vm, 120.0, 0.0)
    assert m.interruption_count == 1
    event = m.interruption_log[0]
    assert event.vm_id == "spot-0" and event.time == 120.0


def test_probability_is_clamped():
    assert SpotConfig(interruption_probability=1.5).interruption_probability == 1.0
    assert SpotConfig(interruption_probability=-0.2).interruption_probability == 0.0


def test_same_seed_same_decisions(spot_vm):
    a, b = model(0.5), model(0.5)
    times = [60.0 + 300 * i for i in range(50)]
    assert [a.should_interrupt(spot_vm, t, 0.0) for t in times] == \
        [b.should_interrupt(spot_vm, t, 0.0) for t in times]


def test_checkpoint_and_resume():
    m = model(0.1)
    ckpt = m.create_checkpoint("t1", executed_time=30.0, total_time=100.0, current_time=500.0)
    assert ckpt.completed_work == pytest.approx(0.3)
    assert ckpt.total_work == 100.0
    assert ckpt.remaining_work == pytest.approx(70.0)
    assert ckpt.completion_percentage == pytest.approx(30.0)
    assert m.get_checkpoint("t1") is ckpt
    assert m.resume_from_checkpoint("t1", total_time=100.0) == pytest.approx(70.0 * 1.02)
    assert m.get_checkpoint("t1") is None


def test_completed_fraction_is_capped():
    ckpt = model(0.1).create_checkpoint("t1", executed_time=150.0, total_time=100.0, current_time=0.0)
    assert ckpt.completed_work == 1.0
    assert ckpt.remaining_work == 0.0


def test_one_live_checkpoint_per_task():
    m = model(0.1)
    m.create_checkpoint("t1", 10.0, 100.0, 1.0)
    latest = m.create_checkpoint("t1", 40.0, 100.0, 2.0)
    assert m.get_checkpoint("t1") is latest
    m.remove_checkpoint("t1")
    assert not m.has_checkpoint("t1")


def test_resume_without_checkpoint_restarts():
    m = model(0.1)
    assert m.resume_from_checkpoint("ghost", total_time=80.0) == 80.0
    external = Checkpoint("t9", completed_work=0.5, timestamp=0.0)
    assert m.resume_from_checkpoint(external, total_time=10.0) == pytest.approx(5.0 * 1.02)


def test_work_lost():
    m = model(0.1)
    assert m.work_lost(42.0, has_checkpoint=False) == 42.0
    assert m.work_lost(42.0, has_checkpoint=True) == 0.0
    assert model(0.1, checkpointing=False).work_lost(7.0) == 7.0


def test_checkpoint_overhead():
    assert model(0.1).checkpoint_overhead(1000.0) == pytest.approx(20.0)


def test_mean_time_to_interruption():
    assert model(0.1).mean_time_to_interruption() == pytest.approx(10.0)
    assert math.isinf(model(0.0).mean_time_to_interruption())


def test_generate_interruption_time():
    m = model(0.1)
    for _ in range(20):
        t = m.generate_interruption_time(100.0, 500.0)
        assert 160.0 <= t <= 500.0
    assert m.generate_interruption_time(0.0, 30.0) is None


def test_simulate_interruptions(catalog):
    fleet = [VmInstance(f"spot-{i}", catalog[0], PricingTier.SPOT, allocated=True) for i in range(3)]
    fleet.append(VmInstance("reserved-9", catalog[0], PricingTier.RESERVED, allocated=True))
    m = model(1.0)
    events = m.simulate_interruptions(fleet, 0.0, 3600.0)
    assert [e.vm_id for e in events] == ["spot-0", "spot-1", "spot-2"]
    assert all(e.time == 300.0 for e in events)
    assert model(0.0).simulate_interruptions(fleet, 0.0, 3600.0) == []


def test_resume_from_checkpoint_object_uses_its_total_work():
    m = model(0.1)
    ckpt = m.create_checkpoint("t1", executed_time=30.0, total_time=100.0, current_time=5.0)
    assert m.resume_from_checkpoint(ckpt) == pytest.approx(71.4)
    assert not m.has_checkpoint("t1")
    # a checkpoint no longer held by the model still carries its own units
    assert m.resume_from_checkpoint(ckpt) == pytest.approx(71.4)


def test_first_interruption_follows_check_grid(spot_vm):
    m = model(1.0, check_interval=300.0)
    at = m.first_interruption(spot_vm, 0.0, 20000.0, 0.0)
    assert at == 300.0
    assert m.interruption_log[0].time == at


def test_first_interruption_skips_grace_and_window_edges(spot_vm):
    m = model(1.0, check_interval=30.0)
    # checks at 30 fall inside the grace period, 60 is the first eligible one
    assert m.first_interruption(spot_vm, 0.0, 100.0, 0.0) == 60.0
    # a window holding no grid point runs no check
    assert m.first_interruption(spot_vm, 61.0, 89.0, 0.0) is None
    # the check at the window start belongs to the previous window
    assert m.first_interruption(spot_vm, 90.0, 150.0, 0.0) == 120.0


def test_first_interruption_draws_once_per_check(spot_vm):
    m = model(0.0, check_interval=100.0)
    assert m.first_interruption(spot_vm, 0.0, 1000.0, 0.0) is None
    assert m.interruption_count == 0
