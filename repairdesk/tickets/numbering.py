from __future__ import annotations

import random
import re
from datetime import datetime, timezone
from typing import Callable

_NON_DIGITS = re.compile(r"\D")


class TicketNumberIssuer:
    """Mint human-facing ticket numbers: ``DDMMYYYY`` + phone tail + random suffix.

    Candidates are not guaranteed unique; the ``uq_repair_tickets_ticket_number``
    constraint decides and the service retries on collision.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.SystemRandom()

    def issue(self, customer_phone: str = "") -> str:
        now = self._clock()
        last4 = _NON_DIGITS.sub("", customer_phone or "")[-4:].rjust(4, "0")
        suffix = self._rng.randint(1000, 9999)
        return f"{now:%d%m%Y}{last4}{suffix}"
