"""
Test the migration controller end to end.
"""

import time

import pytest

from postcopy.config import ActorTiming, CoreConfig
from postcopy.events import EventKind
from postcopy.memory import SourceResidency, TargetResidency
from postcopy.migration import MigrationController, MigrationError, MigrationPhase
from postcopy.paging import PagingService

FAST = ActorTiming(
    instruction_delay=0.001,
    fault_poll_interval=0.005,
    receive_timeout=0.05,
    drain_grace=0.05,
    join_timeout=2.0,
)


def make_config(total_pages: int = 100, free_ratio: float = 0.0) -> CoreConfig:
    return CoreConfig(
        total_pages=total_pages,
        free_page_ratio=free_ratio,
        link_speed_mbps=100_000,
    )


class TestPhases:
    """Test the phase state machine."""

    def test_initial_phase(self):
        controller = MigrationController(make_config(), timing=FAST, seed=1)
        assert controller.phase == MigrationPhase.INITIALIZED
        assert controller.report is None
        assert controller.page_table.transferred_count == 0

    def test_phases_must_run_in_order(self):
        controller = MigrationController(make_config(), timing=FAST, seed=1)
        with pytest.raises(MigrationError):
            controller.transfer_critical_state()
        with pytest.raises(MigrationError):
            controller.resume()
        controller.prepare()
        with pytest.raises(MigrationError):
            controller.prepare()

    def test_cannot_run_twice(self):
        controller = MigrationController(make_config(), timing=FAST, seed=1)
        controller.run()
        assert controller.phase == MigrationPhase.COMPLETED
        with pytest.raises(MigrationError):
            controller.run()

    def test_preparation_counts_free_pages_without_mutation(self):
        controller = MigrationController(make_config(1000, 0.25), timing=FAST, seed=3)
        expected = controller.page_table.count(SourceResidency.FREE)
        assert controller.prepare() == expected
        assert controller.metrics.reclaimed_pages == expected
        assert 150 < expected < 350
        assert controller.page_table.transferred_count == 0

    def test_downtime_transfers_critical_pages(self):
        controller = MigrationController(make_config(100), timing=FAST, seed=1)
        controller.prepare()
        downtime_ms = controller.transfer_critical_state()

        table = controller.page_table
        assert controller.config.non_pageable_pages == 5
        assert table.transferred_pages == frozenset(range(5))
        for page in range(5):
            assert table.source_state(page) == SourceResidency.TRANSFERRED
            assert table.target_state(page) == TargetResidency.PRESENT
        assert not table.is_present(5)
        # Five transfers of at least 1 ms each
        assert downtime_ms >= 5
        assert controller.metrics.pages_transferred == 5


class TestFullMigration:
    """Test complete runs."""

    def test_residency_consistent_after_run(self):
        controller = MigrationController(make_config(500, 0.2), timing=FAST, seed=7)
        report = controller.run()
        table = controller.page_table
        transferred = table.transferred_pages

        for page in range(table.total_pages):
            is_transferred = table.source_state(page) == SourceResidency.TRANSFERRED
            assert is_transferred == (page in transferred) == table.is_present(page)

        assert report.pages_transferred == len(transferred)
        assert report.non_pageable_pages <= report.pages_transferred <= report.total_pages

    def test_never_transferred_pages_were_never_touched(self):
        config = make_config(300)
        controller = MigrationController(config, timing=FAST, seed=11)
        report = controller.run()

        touched = controller.workload.accessed_pages | set(range(config.non_pageable_pages))
        assert controller.page_table.transferred_pages == frozenset(touched)
        assert report.pages_not_transferred == config.total_pages - len(touched)
        for page in controller.workload.accessed_pages:
            assert controller.page_table.is_present(page)

    def test_metrics(self):
        config = make_config(200)
        controller = MigrationController(config, timing=FAST, seed=5)
        report = controller.run()

        assert report.workload_completed
        assert report.memory_accesses == 20
        assert 0 < report.page_faults <= report.memory_accesses
        assert report.demand_transferred == report.pages_transferred - 5
        assert report.demand_transferred == controller.service.demand_transferred
        assert report.fault_rate == pytest.approx(
            report.page_faults / report.memory_accesses * 100
        )
        assert report.bytes_transferred == report.pages_transferred * 4096
        assert report.bytes_saved == report.pages_not_transferred * 4096
        assert report.downtime_ms >= 5
        assert report.total_ms >= report.downtime_ms + report.resume_ms
        assert report.unresponsive_actors == ()

    def test_events_cover_every_phase(self):
        events = []
        controller = MigrationController(
            make_config(100), timing=FAST, seed=2, on_event=events.append
        )
        controller.run()

        started = [e.phase for e in events if e.kind == EventKind.PHASE_STARTED]
        completed = [e.phase for e in events if e.kind == EventKind.PHASE_COMPLETED]
        assert started == ["preparing", "downtime", "resuming"]
        assert completed == ["preparing", "downtime", "resuming"]

        critical = [e.page for e in events if e.kind == EventKind.CRITICAL_PAGE_TRANSFERRED]
        assert critical == [0, 1, 2, 3, 4]

        demand = [e.page for e in events if e.kind == EventKind.PAGE_TRANSFERRED]
        assert len(demand) == controller.service.demand_transferred

    def test_seeded_runs_touch_same_pages(self):
        a = MigrationController(make_config(400, 0.3), timing=FAST, seed=9)
        b = MigrationController(make_config(400, 0.3), timing=FAST, seed=9)
        a.run()
        b.run()
        assert a.page_table.transferred_pages == b.page_table.transferred_pages
        assert a.metrics.reclaimed_pages == b.metrics.reclaimed_pages

    def test_all_pages_critical(self):
        # Five pages: everything moves during downtime, no faults at all
        controller = MigrationController(make_config(5), timing=FAST, seed=1)
        report = controller.run()
        assert report.pages_transferred == 5
        assert report.demand_transferred == 0
        assert report.page_faults == 0
        assert report.pages_not_transferred == 0


class TestShutdown:
    """Test bounded actor shutdown."""

    def test_unresponsive_actor_is_reported(self, monkeypatch):
        def stuck(self, token):
            time.sleep(1.0)

        monkeypatch.setattr(PagingService, "run", stuck)
        timing = ActorTiming(
            instruction_delay=0.001,
            fault_poll_interval=0.005,
            receive_timeout=0.05,
            drain_grace=0.01,
            join_timeout=0.05,
        )
        events = []
        # Every page is critical, so the workload finishes without the service
        controller = MigrationController(
            make_config(5), timing=timing, seed=1, on_event=events.append
        )
        report = controller.run()

        assert controller.phase == MigrationPhase.COMPLETED
        assert report.unresponsive_actors == ("PagingService",)
        assert any(
            e.kind == EventKind.ACTOR_UNRESPONSIVE and e.detail["actor"] == "PagingService"
            for e in events
        )

    def test_crashed_actor_raises(self, monkeypatch):
        def broken(self, token):
            raise RuntimeError("link down")

        monkeypatch.setattr(PagingService, "run", broken)
        controller = MigrationController(make_config(5), timing=FAST, seed=1)
        controller.prepare()
        controller.transfer_critical_state()
        with pytest.raises(MigrationError, match="link down"):
            controller.resume()
