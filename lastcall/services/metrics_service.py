"""
Derived audience metrics.

Snapshots are recomputed from recipients and can always be rebuilt;
audit_metrics reports where stored snapshots have drifted from live data.
"""

from collections import Counter, OrderedDict
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Iterable
import logging
import uuid

from ..core.exceptions import NotFoundError
from ..models import Recipient
from .targeting import GENDER_CATEGORIES, calculate_age, normalize_gender

logger = logging.getLogger(__name__)

USER_GROWTH = "user_growth"
GENDER_DISTRIBUTION = "gender_distribution"
AGE_DISTRIBUTION = "age_distribution"
SNAPSHOT_NAMES = (USER_GROWTH, GENDER_DISTRIBUTION, AGE_DISTRIBUTION)

AGE_BUCKETS = ("21-25", "26-30", "31-35", "36-40", "40+", "unspecified")


def age_bucket(age: Optional[int]) -> str:
    if age is None:
        return "unspecified"
    if age <= 25:
        return "21-25"
    if age <= 30:
        return "26-30"
    if age <= 35:
        return "31-35"
    if age <= 40:
        return "36-40"
    return "40+"


def _cumulative(counts: Dict[str, int]) -> Dict[str, int]:
    running = 0
    result: Dict[str, int] = OrderedDict()
    for key in sorted(counts):
        running += counts[key]
        result[key] = running
    return dict(result)


def compute_user_growth(recipients: Iterable[Recipient]) -> Dict[str, Any]:
    per_day: Counter = Counter()
    per_month: Counter = Counter()
    total = 0
    for r in recipients:
        total += 1
        if r.created_at is None:
            continue
        created = r.created_at.date() if isinstance(r.created_at, datetime) else r.created_at
        per_day[created.isoformat()] += 1
        per_month[created.strftime("%Y-%m")] += 1
    return {
        "total_users": total,
        "per_day": _cumulative(per_day),
        "per_month": _cumulative(per_month),
    }


def compute_gender_distribution(recipients: Iterable[Recipient]) -> Dict[str, int]:
    counts = {category: 0 for category in GENDER_CATEGORIES}
    for r in recipients:
        counts[normalize_gender(r.gender)] += 1
    return counts


def compute_age_distribution(recipients: Iterable[Recipient], as_of: Optional[date] = None) -> Dict[str, int]:
    counts = {bucket: 0 for bucket in AGE_BUCKETS}
    for r in recipients:
        counts[age_bucket(calculate_age(r.birthdate, as_of))] += 1
    return counts


def compute_metrics(recipients: List[Recipient], as_of: Optional[date] = None) -> Dict[str, Dict[str, Any]]:
    """All three snapshots over subscribed recipients"""
    as_of = as_of or datetime.now(timezone.utc).date()
    subscribed = [r for r in recipients if r.subscribe]
    return {
        USER_GROWTH: compute_user_growth(subscribed),
        GENDER_DISTRIBUTION: compute_gender_distribution(subscribed),
        AGE_DISTRIBUTION: compute_age_distribution(subscribed, as_of),
    }


async def refresh_metrics(store, account_id: uuid.UUID, as_of: Optional[date] = None) -> Dict[str, Dict[str, Any]]:
    """Recompute and persist every snapshot for an account"""
    if await store.get_account(account_id) is None:
        raise NotFoundError("Account not found")

    recipients = await store.list_recipients(account_id)
    metrics = compute_metrics(recipients, as_of)
    for name, data in metrics.items():
        await store.save_metrics_snapshot(account_id, name, data)

    logger.info(f"Metrics refreshed for account {account_id}: {metrics[USER_GROWTH]['total_users']} subscribed")
    return metrics


async def get_metrics(store, account_id: uuid.UUID) -> Dict[str, Optional[Dict[str, Any]]]:
    """Stored snapshots, None where a snapshot has never been computed"""
    if await store.get_account(account_id) is None:
        raise NotFoundError("Account not found")
    return {name: await store.get_metrics_snapshot(account_id, name) for name in SNAPSHOT_NAMES}


async def audit_metrics(store, account_id: uuid.UUID, as_of: Optional[date] = None) -> List[Dict[str, Any]]:
    """
    Compare stored snapshots with live values.

    Returns one entry per drifted snapshot: {"name", "stored", "actual"}.
    An empty list means everything is consistent.
    """
    if await store.get_account(account_id) is None:
        raise NotFoundError("Account not found")

    recipients = await store.list_recipients(account_id)
    live = compute_metrics(recipients, as_of)

    discrepancies = []
    for name in SNAPSHOT_NAMES:
        stored = await store.get_metrics_snapshot(account_id, name)
        if stored != live[name]:
            discrepancies.append({"name": name, "stored": stored, "actual": live[name]})

    if discrepancies:
        logger.warning(
            f"Metrics drift for account {account_id}: {', '.join(d['name'] for d in discrepancies)}"
        )
    return discrepancies
