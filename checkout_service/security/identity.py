"""
Caller identity

Authentication happens upstream; the gateway forwards the authenticated
shopper in ``X-Shopper-Id`` and their role in ``X-Role``.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException

from ..core.config import settings
from ..models.identity import Requester

logger = logging.getLogger(__name__)


class IdentityDependency:
    """
    FastAPI dependency resolving the caller into a :class:`Requester`.

    Use route-level instances to require the operator role.
    """

    def __init__(self, require_operator: bool = False):
        """
        Args:
            require_operator: If True, reject callers without the operator role
        """
        self.require_operator = require_operator

    async def __call__(
        self,
        x_shopper_id: Optional[str] = Header(None),
        x_role: Optional[str] = Header(None),
    ) -> Requester:
        if not x_shopper_id or not x_shopper_id.strip():
            raise HTTPException(
                status_code=401,
                detail="This endpoint requires an authenticated shopper",
            )

        is_operator = (x_role or "").strip().lower() == settings.operator_role
        if self.require_operator and not is_operator:
            logger.warning(f"Operator endpoint refused for {x_shopper_id}")
            raise HTTPException(
                status_code=403,
                detail="This endpoint requires the operator role",
            )

        return Requester(shopper_id=x_shopper_id.strip(), is_operator=is_operator)


# Dependency instances
require_shopper = IdentityDependency()
require_operator = IdentityDependency(require_operator=True)
