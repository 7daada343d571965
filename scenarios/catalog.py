"""Scenario catalog: built-in scenarios, JSON catalog loading and subset selection."""
from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from agents.types import Scenario
from config.settings import settings

logger = logging.getLogger(__name__)

FALLBACK_SCENARIOS: List[Scenario] = [
    Scenario(
        id=1,
        situation=(
            "A key customer is very unhappy with a recent product delivery that was delayed, and they are "
            "threatening to take their business to a competitor. This customer accounts for a significant "
            "portion of your quarterly revenue."
        ),
        question="What is your immediate plan of action to handle this situation?",
        best_response_rationale=(
            "Acknowledge the customer's frustration with empathy, take full ownership of the problem without "
            "making excuses, and immediately propose a concrete solution such as expediting the next shipment "
            "for free. The focus should be on solving the customer's problem first and rebuilding trust."
        ),
        worst_response_rationale=(
            "Become defensive, blame the logistics team or external factors, or make promises that cannot be "
            "kept. A poor response would fail to acknowledge the customer's importance and the severity of "
            "the issue."
        ),
        assessed_competency="Customer Focus",
    ),
    Scenario(
        id=2,
        situation=(
            "You notice that a junior member of your team has been struggling to keep up with their workload "
            "and their quality of work has been declining. They seem disengaged during team meetings."
        ),
        question="How would you approach this situation with your team member?",
        best_response_rationale=(
            "Schedule a private, one-on-one meeting to express concern and create a safe space for them to "
            "share any challenges. The ideal approach is to listen actively, ask open-ended questions to "
            "understand the root cause, and collaboratively develop a support plan."
        ),
        worst_response_rationale=(
            "Criticize the team member publicly, immediately put them on a performance improvement plan "
            "without discussion, or simply ignore the problem hoping it will resolve itself. A bad response "
            "lacks empathy and fails to investigate the underlying issues."
        ),
        assessed_competency="Coaching & Mentoring",
    ),
]


class CatalogSettings(BaseModel):
    number_of_questions: int = Field(default=0, ge=0)


class ScenarioCatalog(BaseModel):
    scenarios: List[Scenario] = Field(default_factory=list)
    settings: CatalogSettings = Field(default_factory=CatalogSettings)


def load_catalog(path: Optional[str] = None) -> ScenarioCatalog:
    """Read the configured catalog; any problem yields the built-in scenarios."""

    catalog_path = path if path is not None else settings.SCENARIO_CATALOG_PATH
    if not catalog_path:
        return ScenarioCatalog(scenarios=list(FALLBACK_SCENARIOS))
    try:
        catalog = ScenarioCatalog.model_validate_json(Path(catalog_path).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        logger.warning("Scenario catalog %s unusable, using built-in scenarios: %s", catalog_path, exc)
        return ScenarioCatalog(scenarios=list(FALLBACK_SCENARIOS))
    if not catalog.scenarios:
        logger.warning("Scenario catalog %s is empty, using built-in scenarios", catalog_path)
        return catalog.model_copy(update={"scenarios": list(FALLBACK_SCENARIOS)})
    return catalog


def select_scenarios(
    scenarios: List[Scenario],
    limit: int = 0,
    rng: Optional[random.Random] = None,
) -> List[Scenario]:
    """Random subset of ``limit`` scenarios when the limit is smaller than the catalog."""

    if limit <= 0 or limit >= len(scenarios):
        return list(scenarios)
    chooser = rng or random.Random()
    return chooser.sample(list(scenarios), limit)


def load_scenarios(path: Optional[str] = None, limit: Optional[int] = None) -> List[Scenario]:
    catalog = load_catalog(path)
    if limit is None:
        limit = settings.SCENARIO_LIMIT or catalog.settings.number_of_questions
    return select_scenarios(catalog.scenarios, limit)


__all__ = [
    "FALLBACK_SCENARIOS",
    "ScenarioCatalog",
    "load_catalog",
    "load_scenarios",
    "select_scenarios",
]
