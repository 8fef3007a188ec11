"""
Wiring of adapters and services from configuration.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from .adapters.facebook_client import ConversionsAPIClient
from .adapters.simplybook_authenticator import SimplyBookAuthenticator
from .adapters.simplybook_client import SimplyBookClient
from .config import AppConfig
from .domain.slot_calculator import SlotCalculator
from .services.availability import AvailabilityService
from .services.booking import BookingService, RetryPolicy
from .services.conversions import ConversionsService, EventHistory
from .services.lookups import BookingLookupService


@dataclass
class ServiceContainer:
    authenticator: SimplyBookAuthenticator
    availability: AvailabilityService
    booking: BookingService
    lookups: BookingLookupService
    conversions: ConversionsService


def build_services(
    config: AppConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceContainer:
    simplybook = config.simplybook
    client = SimplyBookClient(
        company_login=simplybook.company_login,
        base_url=simplybook.base_url,
        timeout=simplybook.request_timeout_seconds,
    )
    authenticator = SimplyBookAuthenticator(
        client=client,
        api_key=simplybook.api_key,
        admin_username=simplybook.admin_username,
        admin_password=simplybook.admin_password,
        ttl_seconds=simplybook.token_ttl_seconds,
    )

    calculator = SlotCalculator(
        working_hours=config.working_hours.to_domain(),
        service_duration=config.service_duration,
    )
    availability = AvailabilityService(
        client=client,
        authenticator=authenticator,
        slot_calculator=calculator,
        units=config.resource_units(),
    )
    booking = BookingService(
        client=client,
        authenticator=authenticator,
        availability=availability,
        retry_policy=RetryPolicy(
            max_attempts=config.booking.max_attempts,
            delay_seconds=config.booking.retry_delay_seconds,
        ),
        client_time_offset=config.booking.client_time_offset,
        unavailable_markers=config.booking.unavailable_markers,
        sleep=sleep,
    )
    lookups = BookingLookupService(
        client=client,
        authenticator=authenticator,
        booking_service=booking,
        service_duration=config.service_duration,
    )

    facebook = config.facebook
    conversions = ConversionsService(
        sender=ConversionsAPIClient(
            pixel_id=facebook.pixel_id,
            access_token=facebook.access_token,
            api_version=facebook.api_version,
            timeout=facebook.timeout_seconds,
        ),
        history=EventHistory(maxlen=facebook.history_size),
        default_source_url=facebook.default_source_url,
        test_event_code=facebook.test_event_code,
        development=config.is_development,
        environment=config.environment,
    )

    return ServiceContainer(
        authenticator=authenticator,
        availability=availability,
        booking=booking,
        lookups=lookups,
        conversions=conversions,
    )
