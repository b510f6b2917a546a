"""Bounded, TTL-based cache of weekly templates.

The cache is an explicit object handed to the jobs, never module state, and
is invalidated per owner whenever one of that owner's templates changes.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from appointment_engine.config import settings
from appointment_engine.schemas.template_schema import WeeklyTemplate

logger = logging.getLogger(__name__)


class TemplateCache:
    """Least-recently-used template cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache.template_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.cache.template_max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[WeeklyTemplate, float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, template_id: str) -> Optional[WeeklyTemplate]:
        with self._lock:
            entry = self._entries.get(template_id)
            if entry is None:
                return None
            template, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[template_id]
                return None
            self._entries.move_to_end(template_id)
            return template

    def put(self, template: WeeklyTemplate) -> None:
        with self._lock:
            self._entries[template.id] = (template, self._clock() + self.ttl_seconds)
            self._entries.move_to_end(template.id)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted template %s from cache", evicted)

    def invalidate(self, template_id: str) -> None:
        with self._lock:
            self._entries.pop(template_id, None)

    def invalidate_owner(self, owner: str) -> int:
        """Drop every cached template of ``owner``; returns how many."""
        with self._lock:
            stale = [tid for tid, (tpl, _) in self._entries.items() if tpl.owner == owner]
            for template_id in stale:
                del self._entries[template_id]
        if stale:
            logger.debug("Invalidated %d cached templates for owner %s", len(stale), owner)
        return len(stale)

    def get_or_load(
        self, template_id: str, loader: Callable[[str], Optional[WeeklyTemplate]]
    ) -> Optional[WeeklyTemplate]:
        cached = self.get(template_id)
        if cached is not None:
            return cached
        template = loader(template_id)
        if template is not None:
            self.put(template)
        return template

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
