"""
aisaint/features/entitlements/service.py

Subscription tier resolution.

Handles:
- Ordered entitlement sources, first decisive verdict wins
- Commerce-mirror lookup (monthly premium entitlement)
- User-record premium override flags
- Fail-closed: any source failure degrades to the next source, and no
  decisive verdict means NOT_ENTITLED
"""

from enum import Enum
from typing import Optional, Protocol, Sequence
import logging

from aisaint.core.config import PREMIUM_ENTITLEMENT_ID, PREMIUM_PRODUCT_ID
from aisaint.core.metrics import entitlement_resolutions_total
from aisaint.features.conversations.store import ConversationStore


logger = logging.getLogger(__name__)


class Tier(str, Enum):
    ENTITLED = "ENTITLED"
    NOT_ENTITLED = "NOT_ENTITLED"


class EntitlementSource(Protocol):
    """One step of the resolution chain.

    `check` returns True for a decisive "entitled" verdict, or None when the
    source has no opinion and the next source should be consulted.
    """

    name: str

    async def check(self, user_id: str) -> Optional[bool]:
        ...


class CommerceMirrorSource:
    """Active monthly premium entitlement in the commerce-platform mirror."""

    name = "commerce"

    def __init__(
        self,
        store: ConversationStore,
        product_id: str = PREMIUM_PRODUCT_ID,
        entitlement_id: str = PREMIUM_ENTITLEMENT_ID,
    ):
        self._store = store
        self.product_id = product_id
        self.entitlement_id = entitlement_id

    async def check(self, user_id: str) -> Optional[bool]:
        record = await self._store.get_entitlement_record(user_id)
        if record is None:
            logger.info("[entitlements] no commerce record", extra={"user_id": user_id})
            return None
        if record.is_active(self.product_id, self.entitlement_id):
            return True
        # Inactive entitlement is not decisive; fall through to the user flags
        return None


class UserFlagSource:
    """Premium override flags on the user record."""

    name = "user_flags"

    def __init__(self, store: ConversationStore):
        self._store = store

    async def check(self, user_id: str) -> Optional[bool]:
        user = await self._store.get_user(user_id)
        if user is None:
            return None
        return True if user.has_premium_flag else None


class EntitlementResolver:
    """Walk the sources in order; never raises."""

    def __init__(self, sources: Sequence[EntitlementSource]):
        self._sources = list(sources)

    @classmethod
    def default(cls, store: ConversationStore) -> "EntitlementResolver":
        return cls([CommerceMirrorSource(store), UserFlagSource(store)])

    @property
    def sources(self) -> Sequence[EntitlementSource]:
        return tuple(self._sources)

    async def resolve(self, user_id: str) -> Tier:
        for source in self._sources:
            try:
                verdict = await source.check(user_id)
            except Exception as exc:
                logger.warning(
                    "[entitlements] source failed, falling back",
                    extra={
                        "user_id": user_id,
                        "source": source.name,
                        "error_code": "storage_degraded",
                        "error": repr(exc),
                    },
                )
                continue
            if verdict:
                logger.info(
                    "[entitlements] ENTITLED",
                    extra={"user_id": user_id, "source": source.name, "tier": Tier.ENTITLED.value},
                )
                entitlement_resolutions_total.inc(labels={"tier": Tier.ENTITLED.value, "source": source.name})
                return Tier.ENTITLED

        logger.info("[entitlements] NOT_ENTITLED", extra={"user_id": user_id, "tier": Tier.NOT_ENTITLED.value})
        entitlement_resolutions_total.inc(labels={"tier": Tier.NOT_ENTITLED.value, "source": "default"})
        return Tier.NOT_ENTITLED
