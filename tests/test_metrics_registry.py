"""
Unit tests for Registry: the metric catalog, sub registries, lookup
and serialization.
"""

import threading

import pytest

from multimeter.services.metrics import (
    Counter,
    Gauge,
    GaugeRedeclaredError,
    Histogram,
    Meter,
    MetricTypeConflictError,
    MultimeterError,
    Registry,
    ScopeKindConflictError,
    Timer,
    obtain_registry,
)


class TestObtainRegistry:

    def test_same_pair_returns_same_registry(self, group):
        assert obtain_registry(group, "a") is obtain_registry(group, "a")

    def test_different_pairs_return_different_registries(self, group):
        assert obtain_registry(group, "a") is not obtain_registry(group, "b")
        assert obtain_registry(group, "a") is not obtain_registry(group + "-other", "a")

    def test_root_scope(self, group):
        assert obtain_registry(group, "a").scope == "a"


class TestMetricCatalog:

    @pytest.mark.parametrize("method,cls", [
        ("counter", Counter),
        ("meter", Meter),
        ("histogram", Histogram),
        ("timer", Timer),
    ])
    def test_creates_metric_of_kind(self, registry, method, cls):
        metric = getattr(registry, method)("some_name")
        assert isinstance(metric, cls)

    def test_gauge_is_created(self, registry):
        gauge = registry.gauge("some_name", lambda: 42)
        assert isinstance(gauge, Gauge)
        assert gauge.value == 42

    def test_caches_metric_objects(self, registry):
        assert registry.counter("some_name") is registry.counter("some_name")

    def test_gauge_redeclared_raises_but_access_does_not(self, registry):
        g1 = registry.gauge("some_name", lambda: 42)
        g2 = registry.gauge("some_name")
        assert g1 is g2
        with pytest.raises(GaugeRedeclaredError):
            registry.gauge("some_name", lambda: 42)
        assert registry.gauge("some_name").value == 42

    def test_gauge_access_without_function_fails_when_missing(self, registry):
        with pytest.raises(MultimeterError):
            registry.gauge("missing")
        assert registry.get("missing") is None

    def test_redeclaring_as_other_kind_raises(self, registry):
        counter = registry.counter("some_name")
        with pytest.raises(MetricTypeConflictError) as excinfo:
            registry.meter("some_name")
        assert excinfo.value.existing_kind == "counter"
        assert excinfo.value.requested_kind == "meter"
        assert registry.get("some_name") is counter

    def test_gauge_over_counter_raises_type_conflict(self, registry):
        registry.counter("some_name")
        with pytest.raises(MetricTypeConflictError):
            registry.gauge("some_name", lambda: 1)
        with pytest.raises(MetricTypeConflictError):
            registry.gauge("some_name")

    def test_errors_are_value_errors(self, registry):
        registry.counter("some_name")
        with pytest.raises(ValueError):
            registry.timer("some_name")

    def test_get_does_not_descend(self, registry):
        registry.sub_registry("child").counter("deep")
        assert registry.get("deep") is None
        assert "deep" not in registry


class TestSubRegistry:

    def test_plain_sub_registry_is_cached(self, registry):
        child = registry.sub_registry("child")
        assert child is registry.sub_registry("child")
        assert child.scope == "child"
        assert child.instance_id is None
        assert child.parent is registry

    def test_instance_sub_registries(self, registry):
        first = registry.sub_registry("the_scope", 1)
        assert first is registry.sub_registry("the_scope", "1")
        assert first is not registry.sub_registry("the_scope", 2)
        assert first.instance_id == "1"
        assert first.scope == "the_scope"

    def test_instance_id_on_plain_scope_raises(self, registry):
        registry.sub_registry("child")
        with pytest.raises(ScopeKindConflictError):
            registry.sub_registry("child", 1)
        assert registry.children() == ["child"]

    def test_plain_on_instance_scope_raises(self, registry):
        registry.sub_registry("the_scope", 1)
        with pytest.raises(ScopeKindConflictError):
            registry.sub_registry("the_scope")

    def test_private_registry_is_always_new(self, registry):
        first = registry.private_registry("workers", 3)
        second = registry.private_registry("workers", 3)
        assert first is not second
        assert first.instance_id == "3"
        assert second.instance_id == "3#2"
        assert registry.sub_registry("workers", "3#2") is second

    def test_private_registry_on_plain_scope_raises(self, registry):
        registry.sub_registry("child")
        with pytest.raises(ScopeKindConflictError):
            registry.private_registry("child", 1)


class TestFindMetric:

    @pytest.fixture
    def sub_registry(self, registry):
        sub = registry.sub_registry("another_scope")
        registry.meter("some_meter")
        sub.meter("some_meter")
        sub.meter("another_meter")
        return sub

    def test_looks_in_receiving_registry_first(self, registry, sub_registry):
        m1 = registry.find_metric("some_meter")
        assert m1 is not None
        assert m1 is registry.get("some_meter")
        assert m1 is not sub_registry.get("some_meter")

    def test_looks_in_sub_registries_second(self, registry, sub_registry):
        assert registry.find_metric("another_meter") is sub_registry.get("another_meter")

    def test_looks_all_the_way_down(self, registry, sub_registry):
        deep = registry.sub_registry("down").sub_registry("down_again").sub_registry("and_again").meter("very_deep")
        assert registry.find_metric("very_deep") is deep

    def test_looks_into_instance_registries(self, registry, sub_registry):
        counter = registry.sub_registry("the_scope", 7).counter("per_instance")
        assert registry.find_metric("per_instance") is counter

    def test_returns_none_when_absent(self, registry, sub_registry):
        assert registry.find_metric("hobbeldygook") is None


class TestToDict:

    def test_includes_all_metrics(self, group):
        registry = obtain_registry(group, "s")
        c = registry.counter("c")
        registry.gauge("g", lambda: 42)
        c.inc()
        assert registry.to_dict() == {
            "s": {
                "c": {"type": "counter", "count": 1},
                "g": {"type": "gauge", "value": 42},
            }
        }

    def test_merges_sub_and_sub_sub_registries(self, registry):
        sub_registry1 = registry.sub_registry("some_other_scope")
        sub_registry2 = registry.sub_registry("another_scope")
        sub_sub_registry1 = sub_registry2.sub_registry("sub_sub_scope")
        registry.counter("some_counter").inc()
        registry.gauge("some_gauge", lambda: 42)
        sub_registry1.counter("stuff").inc(3)
        sub_registry2.counter("stuff").inc(2)
        sub_sub_registry1.counter("things").inc()
        assert registry.to_dict() == {
            "some_scope": {
                "some_gauge": {"type": "gauge", "value": 42},
                "some_counter": {"type": "counter", "count": 1},
            },
            "some_other_scope": {
                "stuff": {"type": "counter", "count": 3},
            },
            "another_scope": {
                "stuff": {"type": "counter", "count": 2},
            },
            "sub_sub_scope": {
                "things": {"type": "counter", "count": 1},
            },
        }

    def test_prunes_empty_scopes(self, registry):
        registry.sub_registry("scope1").counter("count1").inc()
        registry.sub_registry("empty").sub_registry("also_empty")
        assert registry.to_dict() == {
            "scope1": {"count1": {"type": "counter", "count": 1}},
        }

    def test_empty_registry_serializes_to_empty_dict(self, registry):
        registry.sub_registry("nothing_here")
        assert registry.to_dict() == {}

    def test_gauges_are_evaluated_on_every_call(self, registry):
        values = iter([1, 2])
        registry.gauge("live", lambda: next(values))
        assert registry.to_dict()["some_scope"]["live"]["value"] == 1
        assert registry.to_dict()["some_scope"]["live"]["value"] == 2

    def test_same_scope_name_at_different_depths_is_merged(self, registry):
        registry.sub_registry("a").sub_registry("shared").counter("x").inc()
        registry.sub_registry("b").sub_registry("shared").counter("y").inc(2)
        assert registry.to_dict() == {
            "shared": {
                "x": {"type": "counter", "count": 1},
                "y": {"type": "counter", "count": 2},
            }
        }


class TestConcurrency:

    def test_racing_get_or_create_yields_one_object(self, registry):
        results = []
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            results.append((
                registry.counter("raced"),
                registry.sub_registry("raced_scope"),
                registry.sub_registry("raced_group", "1"),
            ))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 16
        for index in range(3):
            assert len({id(result[index]) for result in results}) == 1

    def test_concurrent_increments_are_not_lost(self, registry):
        counter = registry.counter("hits")

        def worker():
            for _ in range(1000):
                counter.inc()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert counter.count == 8000

    def test_detached_registry(self):
        registry = Registry("detached")
        registry.counter("c").inc()
        assert registry.parent is None
        assert registry.to_dict() == {"detached": {"c": {"type": "counter", "count": 1}}}
