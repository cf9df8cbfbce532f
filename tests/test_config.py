"""
Test configuration validation and the sizing rules.
"""

import pytest

from postcopy.config import (
    ActorTiming,
    ConfigError,
    CoreConfig,
    access_budget,
    non_pageable_pages,
    pages_from_megabytes,
)


class TestSizing:
    """Test the derived sizes."""

    def test_pages_from_megabytes(self):
        assert pages_from_megabytes(1) == 256
        assert pages_from_megabytes(2048) == 524288

    def test_non_pageable_clamped_to_minimum(self):
        assert non_pageable_pages(100) == 5
        assert non_pageable_pages(5) == 5

    def test_non_pageable_clamped_to_maximum(self):
        assert non_pageable_pages(1_000_000) == 50

    def test_non_pageable_in_range(self):
        # 0.5% of 3000 pages
        assert non_pageable_pages(3000) == 15
        # 0.5% of 2300 = 11.5, rounds up
        assert non_pageable_pages(2300) == 12

    @pytest.mark.parametrize("total", [5, 99, 1000, 2001, 9999, 10_000, 524288, 10**7])
    def test_non_pageable_formula(self, total):
        expected = max(5, min(50, int(total * 0.005 + 0.5)))
        assert non_pageable_pages(total) == expected

    def test_access_budget_bounds(self):
        assert access_budget(256) == 20
        assert access_budget(150_000) == 30
        assert access_budget(10_000_000) == 100


class TestCoreConfig:
    """Test CoreConfig validation."""

    def test_from_vm_size(self):
        config = CoreConfig.from_vm_size(2048, 0.2, 1000)
        assert config.total_pages == 524288
        assert config.non_pageable_pages == 50
        assert config.page_transfer_time_ms == 1
        assert config.vm_size_mb == 2048

    def test_slow_link_transfer_time(self):
        config = CoreConfig(total_pages=100, free_page_ratio=0.0, link_speed_mbps=10)
        # 32768 bits at 10 Mbps = 3.2768 ms
        assert config.page_transfer_time_ms == 3

    @pytest.mark.parametrize("total", [0, -1, 4])
    def test_rejects_bad_page_count(self, total):
        with pytest.raises(ConfigError):
            CoreConfig(total_pages=total, free_page_ratio=0.2, link_speed_mbps=1000)

    @pytest.mark.parametrize("ratio", [-0.01, 1.01])
    def test_rejects_bad_ratio(self, ratio):
        with pytest.raises(ConfigError):
            CoreConfig(total_pages=100, free_page_ratio=ratio, link_speed_mbps=1000)

    @pytest.mark.parametrize("speed", [0, -10, float("inf"), float("nan")])
    def test_rejects_bad_link_speed(self, speed):
        with pytest.raises(ConfigError):
            CoreConfig(total_pages=100, free_page_ratio=0.2, link_speed_mbps=speed)

    def test_rejects_bad_vm_size(self):
        with pytest.raises(ConfigError):
            CoreConfig.from_vm_size(0)

    def test_ratio_bounds_accepted(self):
        CoreConfig(total_pages=100, free_page_ratio=0.0, link_speed_mbps=1)
        CoreConfig(total_pages=100, free_page_ratio=1.0, link_speed_mbps=1)

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)

    def test_immutable(self):
        config = CoreConfig(total_pages=100, free_page_ratio=0.2, link_speed_mbps=1000)
        with pytest.raises(AttributeError):
            config.total_pages = 200


class TestActorTiming:
    """Test ActorTiming defaults and validation."""

    def test_defaults(self):
        timing = ActorTiming()
        assert timing.instruction_delay == 0.050
        assert timing.fault_poll_interval == 0.010
        assert timing.drain_grace == 0.5
        assert timing.join_timeout == 2.0

    def test_rejects_negative(self):
        with pytest.raises(ConfigError):
            ActorTiming(drain_grace=-1)
