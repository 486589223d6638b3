"""Presentation registry — continuity between stateless SlidesGPT calls.

Each assistant conversation builds one logical presentation across many tool
calls. The registry maps the ``presentation_id`` handed back to the caller to
a ``PresentationContext`` holding the remote correlation identity, the deck id
recovered from the first generated slide, and theme state.

The registry lives in process memory only. Contexts untouched for longer than
the retention window are dropped by a periodic sweep.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_presentation_id() -> str:
    return f"pres_{secrets.token_hex(16)}"


class PresentationNotFound(LookupError):
    """Raised when a continuity token does not match any known presentation."""

    def __init__(self, presentation_id: str):
        super().__init__(f"Presentation not found: {presentation_id}")
        self.presentation_id = presentation_id


@dataclass(frozen=True)
class RemoteIdentity:
    """Synthetic user/conversation pair the remote API uses to group calls."""

    conversation_id: str
    user_id: str

    @classmethod
    def generate(cls) -> RemoteIdentity:
        return cls(
            conversation_id=secrets.token_hex(16),
            user_id=f"appSDK-user-{secrets.token_hex(8)}",
        )

    def headers(self) -> dict[str, str]:
        return {
            "openai-ephemeral-user-id": self.user_id,
            "openai-conversation-id": self.conversation_id,
        }


@dataclass
class PresentationContext:
    presentation_id: str
    identity: RemoteIdentity
    created_at: datetime
    last_used: datetime
    slide_count: int = 0
    deck_id: str | None = None
    theme_id: str | None = None
    theme_offered: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def conversation_id(self) -> str:
        return self.identity.conversation_id

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    def record_deck_id(self, deck_id: str | None) -> bool:
        """Store the remote deck id unless one is already known.

        Returns True only when this call populated it.
        """
        if self.deck_id or not deck_id:
            return False
        self.deck_id = deck_id
        return True

    def claim_theme_offer(self) -> bool:
        """Flip ``theme_offered`` on the first eligible call.

        Theme options are surfaced once per presentation, and never after a
        theme has been applied.
        """
        if self.theme_offered or self.theme_id is not None:
            return False
        self.theme_offered = True
        return True


class PresentationRegistry:
    """In-memory store of presentation contexts keyed by continuity token."""

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = ttl
        self._clock = clock
        self._presentations: dict[str, PresentationContext] = {}

    def __len__(self) -> int:
        return len(self._presentations)

    def __contains__(self, presentation_id: object) -> bool:
        return presentation_id in self._presentations

    def resolve_or_create(self, presentation_id: str | None = None) -> PresentationContext:
        """Return the context for ``presentation_id``, creating it if unknown.

        An empty or missing token starts a brand-new presentation under a
        generated id. An unknown non-empty token becomes the key of a new
        context.
        """
        now = self._clock()
        if presentation_id and presentation_id in self._presentations:
            context = self._presentations[presentation_id]
            context.last_used = now
            logger.info(
                "[Registry] Presentation %s (%d slides, deck: %s)",
                presentation_id,
                context.slide_count,
                context.deck_id or "pending",
            )
            return context

        new_id = presentation_id or generate_presentation_id()
        context = PresentationContext(
            presentation_id=new_id,
            identity=RemoteIdentity.generate(),
            created_at=now,
            last_used=now,
        )
        self._presentations[new_id] = context
        logger.info("[Registry] New presentation %s", new_id)
        return context

    def get(self, presentation_id: str) -> PresentationContext | None:
        return self._presentations.get(presentation_id)

    def lookup(self, presentation_id: str) -> PresentationContext:
        """Return an existing context without creating one."""
        context = self._presentations.get(presentation_id)
        if context is None:
            raise PresentationNotFound(presentation_id)
        return context

    def evict_stale(self, now: datetime | None = None, ttl: timedelta | None = None) -> int:
        """Drop every context whose ``last_used`` precedes ``now - ttl``."""
        now = now or self._clock()
        cutoff = now - (ttl if ttl is not None else self.ttl)
        stale = [pid for pid, ctx in self._presentations.items() if ctx.last_used < cutoff]
        for pid in stale:
            del self._presentations[pid]
        if stale:
            logger.info("[Registry] Cleaned %d old presentations", len(stale))
        return len(stale)


async def run_sweeper(registry: PresentationRegistry, interval: float) -> None:
    """Evict stale presentations every ``interval`` seconds until cancelled."""
    logger.debug("[Registry] Sweeper started (every %.0fs, ttl %s)", interval, registry.ttl)
    while True:
        await asyncio.sleep(interval)
        registry.evict_stale()
