"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, SchedulingClientProtocol, TokenProviderProtocol
from .booking import BookingService, RetryPolicy
from .conversions import ConversionsService, EventHistory, RequestContext
from .lookups import BookingLookupService

__all__ = [
    "AvailabilityService",
    "SchedulingClientProtocol",
    "TokenProviderProtocol",
    "BookingService",
    "RetryPolicy",
    "ConversionsService",
    "EventHistory",
    "RequestContext",
    "BookingLookupService",
]
