"""
Tenant credentials for the MarketSharp APIs.
"""

from pydantic import BaseModel, Field, SecretStr
from typing import Optional


class TenantCredentials(BaseModel):
    """
    Immutable per-tenant credentials, passed explicitly to every remote call.

    api_key and secret_key are SecretStr so they never show up in reprs or logs.
    secret_key is the base64 string issued by MarketSharp.
    """

    tenant_id: str
    company_id: str = Field(alias="companyId")
    api_key: SecretStr = Field(alias="apiKey")
    secret_key: SecretStr = Field(alias="secretKey")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    rest_base_url: Optional[str] = Field(None, alias="restBaseUrl")

    class Config:
        frozen = True
        populate_by_name = True
        coerce_numbers_to_str = True
        extra = "ignore"
