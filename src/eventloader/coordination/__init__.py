"""Coordination between loader processes — leases and request pacing."""

from eventloader.coordination.lease import Lease, LeaseManager, SQLiteLeaseManager
from eventloader.coordination.throttle import SQLiteThrottleTracker, ThrottleTracker

__all__ = [
    "Lease",
    "LeaseManager",
    "SQLiteLeaseManager",
    "SQLiteThrottleTracker",
    "ThrottleTracker",
]
