"""
Job categorization and promotion rules.

A remote job is promoted into the operational jobs table while it is open
or was finished within the last 30 days. Once it falls outside that window
its operational row is archived (kept, flagged), never deleted.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel

from marketsharp_sync.models import RemoteJob

logger = logging.getLogger(__name__)

PROMOTION_WINDOW = timedelta(days=30)

# Lower-cased MarketSharp statuses that mean the work is done
TERMINAL_STATUSES = frozenset({"installed", "completed", "closed"})


class JobCategory(str, Enum):
    """Local business categories"""

    WINDOWS = "Windows"
    BATHROOMS = "Bathrooms"
    SIDING = "Siding"
    DOORS = "Doors"


DEFAULT_CATEGORY = JobCategory.WINDOWS

# Checked in order; first match wins
CATEGORY_KEYWORDS: tuple[tuple[str, JobCategory], ...] = (
    ("window", JobCategory.WINDOWS),
    ("bath", JobCategory.BATHROOMS),
    ("siding", JobCategory.SIDING),
    ("door", JobCategory.DOORS),
)


def classify_category(job: RemoteJob) -> JobCategory:
    """Map a job's type (or description, or name) to a local category"""
    text = (job.type or job.description or job.name or "").lower()

    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in text:
            return category

    return DEFAULT_CATEGORY


class PromotionAction(str, Enum):
    """What to do with the operational row of one remote job"""

    CREATE = "create"
    UPDATE = "update"
    ARCHIVE = "archive"
    NONE = "none"


class PromotionDecision(BaseModel):
    is_finished: bool
    is_recently_finished: bool

    @property
    def should_be_promoted(self) -> bool:
        return not self.is_finished or self.is_recently_finished


def evaluate_promotion(job: RemoteJob, now: datetime) -> PromotionDecision:
    """
    Derive the promotion state of a job from its status and completion date.

    A completion date that does not parse still marks the job finished,
    but never recently finished.

    Args:
        job: Remote job
        now: Aware UTC time of the run
    """
    try:
        completed_at = job.completed_at_datetime
    except ValueError:
        logger.warning(f"Job {job.id}: unreadable completedDate {job.completed_date!r}")
        completed_at = None

    status = (job.status or "").lower()

    is_finished = status in TERMINAL_STATUSES or bool(job.completed_date)
    is_recently_finished = (
        is_finished
        and completed_at is not None
        and completed_at >= now - PROMOTION_WINDOW
    )

    return PromotionDecision(
        is_finished=is_finished, is_recently_finished=is_recently_finished
    )


def decide_action(has_link: bool, should_be_promoted: bool) -> PromotionAction:
    if should_be_promoted:
        return PromotionAction.UPDATE if has_link else PromotionAction.CREATE
    return PromotionAction.ARCHIVE if has_link else PromotionAction.NONE
