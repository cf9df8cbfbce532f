"""
Per-page transfer latency.

The link is modeled as constant bandwidth with no contention, so moving
one page always takes the same time:

    time_ms = page_size_bits / link_speed_bps * 1000

The result is rounded and never drops below 1 ms. A zero-length transfer
would make the link unconstrained and break rate calculations.
"""

import math

MIN_TRANSFER_TIME_MS = 1


def page_transfer_time_ms(page_size_bytes: int, link_speed_mbps: float) -> int:
    """
    Compute how long one page takes to cross the link.

    Args:
        page_size_bytes: Size of a page in bytes.
        link_speed_mbps: Link bandwidth in megabits per second.

    Returns:
        Transfer time in whole milliseconds, at least 1.

    Raises:
        ValueError: If the link speed is not positive.
    """
    if link_speed_mbps <= 0:
        raise ValueError(f"Link speed must be positive, got {link_speed_mbps}")

    page_size_bits = page_size_bytes * 8
    link_speed_bps = link_speed_mbps * 1_000_000
    transfer_ms = math.floor(page_size_bits / link_speed_bps * 1000 + 0.5)
    return max(MIN_TRANSFER_TIME_MS, transfer_ms)
