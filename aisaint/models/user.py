from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UserRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    message_count: int = 0
    last_active: Optional[datetime] = None
    is_premium: Optional[bool] = None
    subscription_tier: Optional[str] = None

    @property
    def has_premium_flag(self) -> bool:
        return self.is_premium is True or self.subscription_tier == "premium"
