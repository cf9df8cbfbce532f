"""
Demand paging actors.

This package contains:
- cancel: Cooperative cancellation token shared with the actors
- channel: Fault request channel from the workload to the paging service
- service: The paging service that moves faulted pages across the link
- workload: The VM execution actor that generates accesses and faults
"""

from .cancel import CancellationToken
from .channel import ChannelClosedError, FaultChannel
from .service import PagingService
from .workload import VMExecutionActor

__all__ = [
    "CancellationToken",
    "ChannelClosedError",
    "FaultChannel",
    "PagingService",
    "VMExecutionActor",
]
