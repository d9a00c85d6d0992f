"""Tests for statmon data models, snapshot arithmetic and normalization."""

import dataclasses
import random

import pytest

from statmon.errors import CounterRegression, IdentityMismatch, ZeroActivity
from statmon.models import (
    AGGREGATE,
    CATEGORIES,
    Aggregate,
    Core,
    CpuTimes,
    Delta,
    Report,
    Snapshot,
    cpu_id_from_label,
    normalize,
    subtract,
)


def make_times(*values: int) -> CpuTimes:
    return CpuTimes(*values)


def make_snapshot(timestamp: float, cpu_id, *values: int) -> Snapshot:
    return Snapshot(timestamp=timestamp, cpu_id=cpu_id, times=CpuTimes(*values))


class TestCpuId:
    """Tests for the Aggregate/Core identity types."""

    def test_aggregate_label(self):
        """Test the aggregate renders as the kernel's 'cpu' label."""
        assert str(AGGREGATE) == "cpu"
        assert AGGREGATE == Aggregate()

    def test_core_label(self):
        """Test a core renders with its index appended."""
        assert str(Core(3)) == "cpu3"

    def test_core_rejects_negative_index(self):
        """Test a negative core index is refused."""
        with pytest.raises(ValueError):
            Core(-1)

    def test_aggregate_never_equals_core(self):
        """Test the aggregate is distinct from every core, including core 0."""
        assert AGGREGATE != Core(0)

    def test_from_label(self):
        """Test labels convert back to identities."""
        assert cpu_id_from_label("cpu") == AGGREGATE
        assert cpu_id_from_label("cpu0") == Core(0)
        assert cpu_id_from_label("cpu12") == Core(12)

    @pytest.mark.parametrize("label", ["", "cp", "cpux", "intr", "cpu-1", "cpu 1", "cpu٣"])
    def test_from_label_rejects_garbage(self, label):
        """Test labels that are not cpu lines raise ValueError."""
        with pytest.raises(ValueError):
            cpu_id_from_label(label)


class TestCpuTimes:
    """Tests for the CpuTimes counter set."""

    def test_field_order_matches_kernel(self):
        """Test counters are kept in /proc/stat column order."""
        assert CATEGORIES == ("user", "nice", "system", "idle", "iowait", "irq", "softirq")

    def test_total(self):
        """Test total sums all seven counters."""
        assert make_times(1, 2, 3, 4, 5, 6, 7).total() == 28

    def test_rejects_negative_counter(self):
        """Test a negative counter cannot be constructed."""
        with pytest.raises(ValueError, match="iowait"):
            make_times(0, 0, 0, 0, -1, 0, 0)

    def test_as_dict(self):
        """Test as_dict keys every counter by name."""
        assert make_times(1, 2, 3, 4, 5, 6, 7).as_dict() == {
            "user": 1,
            "nice": 2,
            "system": 3,
            "idle": 4,
            "iowait": 5,
            "irq": 6,
            "softirq": 7,
        }


class TestImmutability:
    """Tests that readings are frozen, slotted value objects."""

    def test_snapshot_is_frozen(self):
        """Test that Snapshot cannot be modified."""
        snapshot = make_snapshot(1.0, AGGREGATE, 1, 2, 3, 4, 5, 6, 7)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.timestamp = 2.0

    def test_snapshot_uses_slots(self):
        """Test that Snapshot uses __slots__ for memory efficiency."""
        snapshot = make_snapshot(1.0, AGGREGATE, 1, 2, 3, 4, 5, 6, 7)
        # Slots-based dataclasses don't have __dict__
        assert not hasattr(snapshot, "__dict__")

    def test_value_equality(self):
        """Test readings with equal fields compare equal."""
        a = make_snapshot(1.0, Core(1), 1, 2, 3, 4, 5, 6, 7)
        b = make_snapshot(1.0, Core(1), 1, 2, 3, 4, 5, 6, 7)
        assert a == b


class TestSubtract:
    """Tests for Snapshot - Snapshot."""

    def test_counter_differences(self):
        """Test each counter of the delta is later minus earlier."""
        earlier = make_snapshot(100.0, AGGREGATE, 10, 20, 30, 40, 50, 60, 70)
        later = make_snapshot(105.0, AGGREGATE, 15, 20, 33, 90, 51, 60, 72)

        delta = later - earlier

        assert delta == subtract(later, earlier)
        assert delta.cpu_id == AGGREGATE
        assert delta.duration == pytest.approx(5.0)
        assert delta.times == make_times(5, 0, 3, 50, 1, 0, 2)

    def test_duration_prefers_monotonic_stamps(self):
        """Test the duration follows the monotonic stamps when both readings carry one."""
        times = make_times(10, 20, 30, 40, 50, 60, 70)
        earlier = Snapshot(timestamp=1000.0, cpu_id=AGGREGATE, times=times, monotonic=20.0)
        later = Snapshot(timestamp=900.0, cpu_id=AGGREGATE, times=times, monotonic=25.0)

        assert (later - earlier).duration == pytest.approx(5.0)

    def test_duration_falls_back_to_timestamps(self):
        """Test readings without a monotonic stamp use the wall-clock difference."""
        times = make_times(10, 20, 30, 40, 50, 60, 70)
        earlier = Snapshot(timestamp=100.0, cpu_id=AGGREGATE, times=times, monotonic=20.0)
        later = make_snapshot(103.0, AGGREGATE, 10, 20, 30, 40, 50, 60, 70)

        assert (later - earlier).duration == pytest.approx(3.0)

    def test_random_monotonic_pairs(self):
        """Test any pair with non-decreasing counters subtracts exactly."""
        rng = random.Random(1234)
        for _ in range(200):
            base = [rng.randrange(0, 10**9) for _ in CATEGORIES]
            step = [rng.randrange(0, 10**6) for _ in CATEGORIES]
            earlier = make_snapshot(0.0, Core(2), *base)
            later = make_snapshot(1.0, Core(2), *(b + s for b, s in zip(base, step)))
            assert (later - earlier).times == make_times(*step)

    def test_aggregate_against_core_fails(self):
        """Test diffing aggregate and per-core data is refused."""
        a = make_snapshot(1.0, AGGREGATE, 1, 1, 1, 1, 1, 1, 1)
        b = make_snapshot(0.0, Core(0), 0, 0, 0, 0, 0, 0, 0)
        with pytest.raises(IdentityMismatch) as excinfo:
            a - b
        assert excinfo.value.left == AGGREGATE
        assert excinfo.value.right == Core(0)
        assert "cpu" in str(excinfo.value) and "cpu0" in str(excinfo.value)

    def test_different_cores_fail(self):
        """Test diffing two different cores is refused."""
        a = make_snapshot(1.0, Core(1), 1, 1, 1, 1, 1, 1, 1)
        b = make_snapshot(0.0, Core(2), 0, 0, 0, 0, 0, 0, 0)
        with pytest.raises(IdentityMismatch):
            subtract(a, b)

    @pytest.mark.parametrize("field_index", range(7))
    def test_regression_in_any_counter_fails(self, field_index):
        """Test a decrease in any single counter raises CounterRegression."""
        earlier_values = [100] * 7
        later_values = [200] * 7
        later_values[field_index] = 99
        earlier = make_snapshot(0.0, AGGREGATE, *earlier_values)
        later = make_snapshot(5.0, AGGREGATE, *later_values)

        with pytest.raises(CounterRegression) as excinfo:
            later - earlier

        assert excinfo.value.field == CATEGORIES[field_index]
        assert excinfo.value.earlier == 100
        assert excinfo.value.later == 99

    def test_unsupported_operand(self):
        """Test subtracting something that is not a reading raises TypeError."""
        snapshot = make_snapshot(0.0, AGGREGATE, 1, 2, 3, 4, 5, 6, 7)
        with pytest.raises(TypeError):
            snapshot - 1


class TestRebase:
    """Tests for Snapshot +/- Delta."""

    def test_add_delta(self):
        """Test adding a delta advances timestamp and counters."""
        snapshot = make_snapshot(100.0, Core(0), 10, 0, 10, 10, 0, 0, 0)
        delta = Delta(duration=5.0, cpu_id=Core(0), times=make_times(1, 2, 3, 4, 5, 6, 7))

        result = snapshot + delta

        assert result.timestamp == pytest.approx(105.0)
        assert result.cpu_id == Core(0)
        assert result.times == make_times(11, 2, 13, 14, 5, 6, 7)

    def test_add_delta_advances_monotonic(self):
        """Test re-basing carries the monotonic stamp along with the timestamp."""
        snapshot = Snapshot(timestamp=100.0, cpu_id=Core(0), times=make_times(1, 1, 1, 1, 1, 1, 1), monotonic=8.0)
        delta = Delta(duration=2.0, cpu_id=Core(0), times=make_times(1, 1, 1, 1, 1, 1, 1))

        assert (snapshot + delta).monotonic == pytest.approx(10.0)
        assert (snapshot + delta - delta).monotonic == pytest.approx(8.0)
        assert (make_snapshot(100.0, Core(0), 1, 1, 1, 1, 1, 1, 1) + delta).monotonic is None

    def test_subtract_delta_inverts_add(self):
        """Test re-basing backwards by a delta undoes adding it."""
        snapshot = make_snapshot(100.0, AGGREGATE, 10, 20, 30, 40, 50, 60, 70)
        delta = Delta(duration=2.5, cpu_id=AGGREGATE, times=make_times(1, 1, 1, 1, 1, 1, 1))

        assert (snapshot + delta) - delta == snapshot

    def test_later_minus_delta_gives_earlier(self):
        """Test a snapshot minus the delta from an earlier one recovers the earlier one."""
        earlier = make_snapshot(10.0, AGGREGATE, 5, 5, 5, 5, 5, 5, 5)
        later = make_snapshot(15.0, AGGREGATE, 9, 5, 8, 20, 5, 6, 5)

        assert later - (later - earlier) == earlier

    def test_add_delta_identity_mismatch(self):
        """Test adding a delta of another cpu is refused."""
        snapshot = make_snapshot(0.0, AGGREGATE, 0, 0, 0, 0, 0, 0, 0)
        delta = Delta(duration=1.0, cpu_id=Core(0), times=make_times(0, 0, 0, 0, 0, 0, 0))
        with pytest.raises(IdentityMismatch):
            snapshot + delta

    def test_subtract_delta_identity_mismatch(self):
        """Test subtracting a delta of another cpu is refused."""
        snapshot = make_snapshot(0.0, Core(1), 0, 0, 0, 0, 0, 0, 0)
        delta = Delta(duration=1.0, cpu_id=Core(0), times=make_times(0, 0, 0, 0, 0, 0, 0))
        with pytest.raises(IdentityMismatch):
            snapshot - delta

    def test_subtract_oversized_delta_regresses(self):
        """Test a delta larger than the snapshot raises CounterRegression."""
        snapshot = make_snapshot(10.0, AGGREGATE, 5, 5, 5, 5, 5, 5, 5)
        delta = Delta(duration=1.0, cpu_id=AGGREGATE, times=make_times(0, 0, 6, 0, 0, 0, 0))
        with pytest.raises(CounterRegression) as excinfo:
            snapshot - delta
        assert excinfo.value.field == "system"


class TestNormalize:
    """Tests for turning a Delta into a Report."""

    def test_fractions(self):
        """Test each fraction is its counter over the total."""
        delta = Delta(duration=5.0, cpu_id=AGGREGATE, times=make_times(25, 0, 25, 50, 0, 0, 0))

        report = normalize(delta)

        assert isinstance(report, Report)
        assert report.duration == 5.0
        assert report.cpu_id == AGGREGATE
        assert report.user == pytest.approx(0.25)
        assert report.system == pytest.approx(0.25)
        assert report.idle == pytest.approx(0.5)
        assert report.total_used == pytest.approx(0.5)

    def test_random_deltas_sum_to_one(self):
        """Test fractions sum to 1 and used + idle is 1 for arbitrary deltas."""
        rng = random.Random(42)
        for _ in range(500):
            values = [rng.randrange(0, 10**7) for _ in CATEGORIES]
            if sum(values) == 0:
                continue
            report = normalize(Delta(duration=1.0, cpu_id=AGGREGATE, times=make_times(*values)))

            assert sum(report.fractions().values()) == pytest.approx(1.0, abs=1e-6)
            assert report.total_used + report.idle == pytest.approx(1.0, abs=1e-6)
            assert all(0.0 <= value <= 1.0 for value in report.fractions().values())

    def test_all_idle(self):
        """Test an idle interval reports zero usage."""
        report = normalize(Delta(duration=1.0, cpu_id=Core(0), times=make_times(0, 0, 0, 100, 0, 0, 0)))
        assert report.idle == 1.0
        assert report.total_used == 0.0

    def test_total_used_is_not_user_share(self):
        """Test total_used counts every non-idle category, not only user."""
        report = normalize(Delta(duration=1.0, cpu_id=AGGREGATE, times=make_times(10, 10, 10, 10, 10, 10, 40)))
        assert report.user == pytest.approx(0.1)
        assert report.total_used == pytest.approx(0.9)

    def test_zero_activity(self):
        """Test an all-zero delta raises ZeroActivity instead of dividing by zero."""
        delta = Delta(duration=0.01, cpu_id=Core(4), times=make_times(0, 0, 0, 0, 0, 0, 0))
        with pytest.raises(ZeroActivity) as excinfo:
            normalize(delta)
        assert excinfo.value.cpu_id == Core(4)

    def test_as_dict(self):
        """Test as_dict is JSON friendly and carries every field."""
        report = normalize(Delta(duration=2.0, cpu_id=Core(1), times=make_times(1, 0, 0, 1, 0, 0, 0)))
        data = report.as_dict()
        assert data["cpu"] == "cpu1"
        assert data["duration"] == 2.0
        assert data["user"] == 0.5
        assert data["total_used"] == 0.5
        assert set(data) == {"cpu", "duration", "total_used", *CATEGORIES}
