"""Session cache for skill reference links."""
import logging
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class LinkCache:
    """Caches ``get_link(skill_code, component)`` per pair for a session.

    A miss is cached as an empty string so the store is not asked again.
    Lookup errors are logged and not cached.
    """

    def __init__(self, lookup: Callable[[str, str], Optional[str]]):
        self._lookup = lookup
        self._cache: Dict[Tuple[str, str], str] = {}

    def get(self, skill_code: str, component: str) -> Optional[str]:
        key = (skill_code, component)
        if key in self._cache:
            return self._cache[key] or None
        try:
            link = self._lookup(skill_code, component)
        except Exception:
            logger.warning("link lookup failed for %s/%s", skill_code, component, exc_info=True)
            return None
        self._cache[key] = link or ''
        return link or None

    def for_skill(self, skill: dict, component: str) -> Optional[str]:
        """Reference link for a weak skill; skills at 100% get none."""
        if not skill.get('is_weak') or not skill.get('skill_code'):
            return None
        return self.get(skill['skill_code'], component)

    def __contains__(self, key) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)
