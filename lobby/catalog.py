"""Activity catalog: the static list of selectable games and their categories."""

import json
import logging
from typing import List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

import config

logger = logging.getLogger(__name__)


class Activity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    category: str = ""
    min_players: int = Field(default=1, alias="minPlayers")
    max_players: int = Field(default=100, alias="maxPlayers")


class ActivityCatalog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_list: List[Activity] = Field(default_factory=list, alias="gameList")
    categories: List[str] = Field(default_factory=list)

    def get(self, activity_id: str) -> Optional[Activity]:
        for activity in self.game_list:
            if activity.id == activity_id:
                return activity
        return None

    def by_category(self, category: str) -> List[Activity]:
        return [a for a in self.game_list if a.category == category]


DEFAULT_CATALOG = {
    "categories": ["drawing", "trivia", "word"],
    "gameList": [
        {"id": "sketch-off", "name": "Sketch Off", "category": "drawing",
         "minPlayers": 3, "maxPlayers": 12},
        {"id": "quick-quiz", "name": "Quick Quiz", "category": "trivia",
         "minPlayers": 2, "maxPlayers": 20},
        {"id": "fake-out", "name": "Fake Out", "category": "word",
         "minPlayers": 3, "maxPlayers": 10},
    ],
}


def load_catalog(path: str = "") -> ActivityCatalog:
    """Load the server's catalog from ``path``, or the built-in default."""
    if not path:
        return ActivityCatalog.model_validate(DEFAULT_CATALOG)
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    catalog = ActivityCatalog.model_validate(data)
    logger.info("Loaded %d activities from %s", len(catalog.game_list), path)
    return catalog


def fetch_catalog(base_url: str) -> ActivityCatalog:
    """Fetch the catalog once at client start-up.

    A failure leaves the client with an empty catalog rather than blocking the
    lobby; the host just has nothing to select until the next start.
    """
    url = base_url.rstrip("/") + "/catalog"
    try:
        resp = requests.get(url, timeout=config.CATALOG_TIMEOUT)
        resp.raise_for_status()
        return ActivityCatalog.model_validate(resp.json())
    except (requests.RequestException, ValueError) as e:
        logger.warning("Could not fetch activity catalog from %s: %s", url, e)
        return ActivityCatalog()
