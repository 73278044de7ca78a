"""
MarketSharp API Models

Records returned by the MarketSharp OData API after envelope/date normalization.
Wire names are camelCase; we model only the fields the sync uses.
"""

from pydantic import BaseModel, Field
from typing import Optional, Union
from datetime import datetime, timezone


def parse_remote_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a normalized MarketSharp timestamp into an aware UTC datetime.

    Raises ValueError for non-empty strings that are not ISO-8601.
    """
    if not value:
        return None

    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def join_address(*parts: Optional[str]) -> str:
    """Join the non-empty address parts with ', '"""
    return ", ".join(p for p in parts if p)


class RemoteContact(BaseModel):
    """MarketSharp contact (also returned by the Customers resource)"""

    id: str
    company_id: Optional[str] = Field(None, alias="companyId")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    business_name: Optional[str] = Field(None, alias="businessName")
    email1: Optional[str] = None
    email2: Optional[str] = None
    source: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")
    creation_date: Optional[str] = Field(None, alias="creationDate")
    last_update: Optional[str] = Field(None, alias="lastUpdate")

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True

    @property
    def full_name(self) -> str:
        return " ".join(p for p in [self.first_name, self.last_name] if p)


class RemoteAddress(BaseModel):
    """Postal address attached to a contact"""

    id: Optional[str] = None
    contact_id: Optional[str] = Field(None, alias="contactId")
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True

    @property
    def full_address(self) -> str:
        """Format as single address string"""
        return join_address(self.line1, self.city, self.state, self.zip)


class RemotePhone(BaseModel):
    """Phone numbers for a contact (one record holds every kind)"""

    contact_id: Optional[str] = Field(None, alias="contactId")
    home_phone: Optional[str] = Field(None, alias="homePhone")
    cell_phone: Optional[str] = Field(None, alias="cellPhone")
    work_phone: Optional[str] = Field(None, alias="workPhone")
    other_phone: Optional[str] = Field(None, alias="otherPhone")

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True

    @property
    def best(self) -> Optional[str]:
        """Cell first, then home, then work"""
        return self.cell_phone or self.home_phone or self.work_phone or None


class RemoteJobContact(BaseModel):
    """Inline contact carried by Jobs?$expand=Contact"""

    id: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email1: Optional[str] = None

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True


class RemoteJob(BaseModel):
    """MarketSharp job"""

    id: str
    contact_id: Optional[str] = Field(None, alias="contactId")
    number: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    address_line1: Optional[str] = Field(None, alias="addressLine1")
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    note: Optional[str] = None
    start_date: Optional[str] = Field(None, alias="startDate")
    sale_date: Optional[str] = Field(None, alias="saleDate")
    completed_date: Optional[str] = Field(None, alias="completedDate")
    is_active: Optional[bool] = Field(None, alias="isActive")
    last_update: Optional[str] = Field(None, alias="lastUpdate")
    created_date: Optional[str] = Field(None, alias="createdDate")

    contact: Optional[RemoteJobContact] = Field(None, alias="Contact")

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True

    @property
    def has_address(self) -> bool:
        return bool(self.address_line1)

    @property
    def full_address(self) -> str:
        return join_address(self.address_line1, self.city, self.state, self.zip)

    @property
    def completed_at_datetime(self) -> Optional[datetime]:
        """Completion date as aware UTC datetime (ValueError if malformed)"""
        return parse_remote_datetime(self.completed_date)


class RemoteContract(BaseModel):
    """Contract attached to a job. Money fields arrive as strings."""

    id: Optional[str] = None
    job_id: Optional[str] = Field(None, alias="jobId")
    contract_date: Optional[str] = Field(None, alias="contractDate")
    status: Optional[str] = None
    completed_date: Optional[str] = Field(None, alias="completedDate")
    gross: Optional[Union[str, float]] = None
    total_contract: Optional[Union[str, float]] = Field(None, alias="totalContract")
    balance_due: Optional[Union[str, float]] = Field(None, alias="balanceDue")
    finance_total: Optional[Union[str, float]] = Field(None, alias="financeTotal")
    cash_total: Optional[Union[str, float]] = Field(None, alias="cashTotal")
    payment_type: Optional[str] = Field(None, alias="paymentType")
    is_active: Optional[bool] = Field(None, alias="isActive")

    class Config:
        extra = "ignore"
        populate_by_name = True
        coerce_numbers_to_str = True
