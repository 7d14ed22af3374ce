"""
aisaint/models/entitlement.py

Read-only view of the commerce-platform mirror record for a user.

The billing sync writes `subscriptions` as:

    {
        "<product id>": {
            "entitlements": {
                "<entitlement id>": {"active": true, ...}
            },
            ...
        }
    }

Anything that does not match this shape is treated as "not active".
"""

from typing import Any, Dict
from pydantic import BaseModel, ConfigDict, Field


class EntitlementRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    subscriptions: Dict[str, Any] = Field(default_factory=dict)

    def is_active(self, product_id: str, entitlement_id: str) -> bool:
        product = self.subscriptions.get(product_id)
        if not isinstance(product, dict):
            return False
        entitlements = product.get("entitlements")
        if not isinstance(entitlements, dict):
            return False
        status = entitlements.get(entitlement_id)
        if not isinstance(status, dict):
            return False
        return status.get("active") is True
