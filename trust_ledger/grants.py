"""Access grants over ciphertext handles.

Grants are additive: a handle gains principals and may be flagged publicly
disclosable, but nothing is ever revoked.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import select

from .codec import is_handle
from .errors import UnknownHandle
from .models import CiphertextGrant, GrantPrincipal
from .state import LedgerState

logger = logging.getLogger(__name__)


class AccessGrantManager:
    def __init__(self, state: LedgerState) -> None:
        self.state = state

    def _header(self, handle: str, *, create: bool) -> Optional[CiphertextGrant]:
        if not is_handle(handle):
            raise UnknownHandle(handle)
        grant = self.state.session.get(CiphertextGrant, handle)
        if grant is None and create:
            grant = CiphertextGrant(handle=handle)
            self.state.session.add(grant)
        return grant

    def _has_principal(self, handle: str, principal: str) -> bool:
        row = self.state.session.exec(
            select(GrantPrincipal).where(
                GrantPrincipal.handle == handle,
                GrantPrincipal.principal == principal,
            )
        ).first()
        return row is not None

    def grant_access(self, handle: str, principal: str) -> None:
        """Allow *principal* to use and disclose *handle*. Idempotent."""
        with self.state.atomic():
            self._header(handle, create=True)
            if not self._has_principal(handle, principal):
                self.state.session.add(GrantPrincipal(handle=handle, principal=principal))
                logger.debug(
                    "granted access", extra={"handle": handle, "principal": principal}
                )

    def grant_self_access(self, handle: str) -> None:
        """Let the ledger itself keep computing on *handle*."""
        self.grant_access(handle, self.state.principal)

    def grant_public_disclosure(self, handle: str) -> None:
        """Mark *handle* as disclosable by anyone. Idempotent and permanent."""
        with self.state.atomic():
            grant = self._header(handle, create=True)
            if not grant.public_disclosure:
                grant.public_disclosure = True
                self.state.session.add(grant)

    def is_disclosable(self, handle: str, principal: Optional[str] = None) -> bool:
        grant = self._header(handle, create=False)
        if grant is None:
            return False
        if grant.public_disclosure:
            return True
        return principal is not None and self._has_principal(handle, principal)

    def principals(self, handle: str) -> List[str]:
        self._header(handle, create=False)
        rows = self.state.session.exec(
            select(GrantPrincipal.principal)
            .where(GrantPrincipal.handle == handle)
            .order_by(GrantPrincipal.id)
        ).all()
        return list(rows)
