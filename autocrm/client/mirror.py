import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ProfileMirror:
    """
    Local copy of the signed-in user's profile, so the profile screen still has
    something to show when the API cannot be reached. Kept in memory, and in a
    JSON file when a path is given.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._profiles: Dict[str, Dict[str, Any]] = {}
        if self.path and self.path.exists():
            try:
                self._profiles = json.loads(self.path.read_text())
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable profile mirror {self.path}: {e}")

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        profile = self._profiles.get(user_id)
        if profile is None or profile.get("deleted_at"):
            return None
        return profile

    def put(self, profile: Dict[str, Any]):
        self._profiles[profile["id"]] = profile
        self._save()

    def remove(self, user_id: str):
        if self._profiles.pop(user_id, None) is not None:
            self._save()

    def clear(self):
        self._profiles = {}
        self._save()

    def _save(self):
        if self.path:
            self.path.write_text(json.dumps(self._profiles))
