"""Explicit ledger state handed to every component."""
from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from sqlmodel import Session

DEFAULT_PRINCIPAL = os.getenv("LEDGER_PRINCIPAL", "trust-ledger")


@dataclass
class LedgerState:
    """Database session plus the ledger's own principal identity.

    ``atomic()`` blocks nest; only the outermost one commits, and any
    exception rolls the whole transaction back so no partial update is ever
    visible.
    """

    session: Session
    principal: str = DEFAULT_PRINCIPAL
    _depth: int = field(default=0, init=False, repr=False)

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        self._depth += 1
        try:
            yield self.session
            if self._depth == 1:
                self.session.commit()
        except BaseException:
            if self._depth == 1:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1
