"""
Request bodies of the HTTP API.
"""

import re
from typing import Any, Dict, List, Optional

import pendulum
from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AvailabilityQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start_date: str
    end_date: str
    service_id: int

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        try:
            return pendulum.from_format(value, "YYYY-MM-DD").to_date_string()
        except ValueError:
            raise ValueError("must be a date in YYYY-MM-DD format") from None


class BookingSessionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    start_time: str = Field(min_length=1)
    service_id: int
    unit_id: int
    client_name: str = Field(min_length=1)
    client_email: str = Field(min_length=1)
    client_phone: str = Field(min_length=1)
    client_notes: Optional[str] = None

    @field_validator("unit_id", mode="before")
    @classmethod
    def first_unit(cls, value: Any) -> Any:
        # The booking widget sometimes posts unit_id as a one-element list.
        if isinstance(value, list):
            return value[0] if value else None
        return value


class UserData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    em: Optional[str] = None
    ph: Optional[str] = None
    external_id: Optional[str] = None
    client_ip_address: Optional[IPvAnyAddress] = None
    client_user_agent: Optional[str] = None
    fbc: Optional[str] = None
    fbp: Optional[str] = None
    subscription_id: Optional[str] = None
    fb_login_id: Optional[str] = None
    lead_id: Optional[str] = None
    dobd: Optional[str] = None
    dobm: Optional[str] = None
    doby: Optional[str] = None

    @field_validator("em")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not EMAIL_PATTERN.match(value.strip()):
            raise ValueError("must be a valid email")
        return value


class CustomData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content_name: Optional[str] = None
    content_category: Optional[str] = None
    content_ids: Optional[List[str]] = None
    content_type: Optional[str] = None
    value: Optional[float] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    delivery_category: Optional[str] = None
    num_items: Optional[int] = Field(default=None, ge=0)
    order_id: Optional[str] = None
    search_string: Optional[str] = None
    status: Optional[str] = None
    item_number: Optional[str] = None


class ConversionEventRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_name: str = Field(min_length=1, max_length=100)
    event_data: Optional[Dict[str, Any]] = None
    user_data: Optional[UserData] = None
    custom_data: Optional[CustomData] = None

    def user_data_dict(self) -> Dict[str, Any]:
        if self.user_data is None:
            return {}
        return self.user_data.model_dump(mode="json", exclude_none=True)

    def custom_data_dict(self) -> Dict[str, Any]:
        if self.custom_data is None:
            return {}
        return self.custom_data.model_dump(mode="json", exclude_none=True)


class BatchEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_name: str = Field(min_length=1)
    event_time: Optional[int] = None
    user_data: Optional[Dict[str, Any]] = None
    custom_data: Optional[Dict[str, Any]] = None


class BatchEventsRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    events: List[BatchEvent] = Field(min_length=1, max_length=100)
