"""
MarketSharp request signing.

Both the OData read API and the REST write API authenticate with
companyId:apiKey:epoch:hash, where hash is the base64 HMAC-SHA256 of
companyId + apiKey + epoch keyed with the base64-decoded secret.
"""

import base64
import hashlib
import hmac
import time
from typing import Optional

from marketsharp_sync.models import TenantCredentials


def sign_request(credentials: TenantCredentials, epoch: Optional[int] = None) -> str:
    """
    Build the Authorization value for one request.

    Args:
        credentials: Tenant credentials
        epoch: Unix seconds to embed (defaults to now). Must be fresh per request.

    Returns:
        str: companyId:apiKey:epoch:hash
    """
    if epoch is None:
        epoch = int(time.time())

    api_key = credentials.api_key.get_secret_value()
    message = f"{credentials.company_id}{api_key}{epoch}".encode("utf-8")
    key = base64.b64decode(credentials.secret_key.get_secret_value())

    digest = hmac.new(key, message, hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("ascii")

    return f"{credentials.company_id}:{api_key}:{epoch}:{signature}"
