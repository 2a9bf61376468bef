"""
Quota Guard - plan limit checks for count resources and content credits
Read-and-decide only; denials are returned as results, never raised
"""
from abc import ABC, abstractmethod
from sqlalchemy.orm import Session
from typing import Optional, Dict, List, Any
from dataclasses import dataclass, field
import logging

from ..db.models import Plan, CreditKind, RESOURCE_LIMIT_COLUMNS
from .plan_catalog import Limit, PlanLimits
from .subscription_service import SubscriptionStatusResolver, SubscriptionStatus

logger = logging.getLogger(__name__)

TRIAL_EXPIRED_REASON = "Trial period expired. Subscribe to a plan to continue."
INACTIVE_REASON = "Subscription inactive. Subscribe to a plan to access this feature."

# Human-readable names used in denial messages
RESOURCE_LABELS = {
    CreditKind.QUICK_CONTENT_CREATIONS.value: "quick content creations",
    CreditKind.CUSTOM_CONTENT_SUGGESTIONS.value: "custom content suggestions",
    CreditKind.CONTENT_PLANS.value: "content plans",
    CreditKind.CONTENT_REVIEWS.value: "content reviews",
    "members": "members",
    "brands": "brands",
    "themes": "strategic themes",
    "personas": "personas",
}

CONTENT_KINDS = [kind.value for kind in CreditKind]
COUNT_RESOURCES = list(RESOURCE_LIMIT_COLUMNS)

# Monthly quota usage above this percentage produces a warning
USAGE_WARNING_PERCENT = 80


@dataclass
class QuotaDecision:
    """Whether one more unit may be created or consumed"""
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason, "limit": self.limit}


class ResourceCounter(ABC):
    """
    Counting collaborator: how many of a resource a team currently has

    Implementations are supplied by the data layer that owns brands,
    personas, themes and members.
    """

    @abstractmethod
    def count(self, team_id: int, resource: str) -> int:
        pass


def access_denial_reason(status: SubscriptionStatus) -> str:
    """Reason shown when a team cannot access the product at all"""
    if status.is_expired:
        return TRIAL_EXPIRED_REASON
    return INACTIVE_REASON


class QuotaGuard:
    """Answers "may this team add one more X?" against its resolved plan"""

    def __init__(self, db: Session, resolver: Optional[SubscriptionStatusResolver] = None):
        self.db = db
        self.resolver = resolver or SubscriptionStatusResolver(db)

    def _check(self, team_id: int, resource: str, current_usage: int) -> QuotaDecision:
        status = self.resolver.resolve(team_id)
        if not status.can_access:
            return QuotaDecision(allowed=False, reason=access_denial_reason(status))

        limit = PlanLimits.from_plan(status.plan).limit_for(resource)
        if limit.is_reached(current_usage):
            label = RESOURCE_LABELS.get(resource, resource)
            logger.info(f"Team {team_id} reached {resource} limit ({current_usage}/{limit})")
            return QuotaDecision(
                allowed=False,
                reason=f"Limit of {limit} {label} reached for the {status.plan.name} plan.",
                limit=limit.to_display(),
            )

        return QuotaDecision(allowed=True, limit=limit.to_display())

    def can_perform(self, team_id: int, kind: str, current_usage: int) -> QuotaDecision:
        """
        Check a content action against the plan quota

        Args:
            team_id: Team ID
            kind: One of the four content credit kinds
            current_usage: Usage counted by the caller

        Returns:
            QuotaDecision; denied when usage is at or over the limit
        """
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind}")
        return self._check(team_id, kind, current_usage)

    def can_add_members(self, team_id: int, current_member_count: int) -> QuotaDecision:
        return self._check(team_id, "members", current_member_count)

    def can_create_brand(self, team_id: int, current_brand_count: int) -> QuotaDecision:
        return self._check(team_id, "brands", current_brand_count)

    def can_create_persona(self, team_id: int, current_persona_count: int) -> QuotaDecision:
        return self._check(team_id, "personas", current_persona_count)

    def can_create_theme(self, team_id: int, current_theme_count: int) -> QuotaDecision:
        return self._check(team_id, "themes", current_theme_count)

    def check_with_counter(self, team_id: int, resource: str, counter: ResourceCounter) -> QuotaDecision:
        """Check a count resource using the external counter for the current usage"""
        if resource not in COUNT_RESOURCES:
            raise ValueError(f"Unknown count resource: {resource}")
        return self._check(team_id, resource, counter.count(team_id, resource))


@dataclass
class PlanUsageReport:
    """Result of checking a team's current usage against a plan"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    percentages: Dict[str, Optional[float]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "percentages": self.percentages,
        }


def _usage_percent(current: int, limit: Limit) -> Optional[float]:
    if limit.is_unlimited:
        return None
    if limit.value == 0:
        return 100.0 if current > 0 else 0.0
    return round(current / limit.value * 100, 1)


def validate_plan_usage(usage: Dict[str, int], plan: Plan) -> PlanUsageReport:
    """
    Compare a team's usage with a plan, e.g. before switching plans

    Count resources over the limit are errors; monthly content usage above
    80% of its quota is a warning.

    Args:
        usage: Current counts keyed by resource (members/brands/themes/personas)
            and monthly usage keyed by content kind
        plan: Plan to validate against

    Returns:
        PlanUsageReport
    """
    limits = PlanLimits.from_plan(plan)
    errors = []
    warnings = []
    percentages = {}

    for resource in COUNT_RESOURCES:
        current = usage.get(resource, 0)
        limit = limits.limit_for(resource)
        percentages[resource] = _usage_percent(current, limit)
        if not limit.is_unlimited and current > limit.value:
            errors.append(f"Team exceeds the {RESOURCE_LABELS[resource]} limit ({current}/{limit})")

    for kind in CONTENT_KINDS:
        current = usage.get(kind, 0)
        limit = limits.limit_for(kind)
        percent = _usage_percent(current, limit)
        percentages[kind] = percent
        if percent is not None and percent > USAGE_WARNING_PERCENT:
            warnings.append(f"Close to the monthly {RESOURCE_LABELS[kind]} limit ({current}/{limit})")

    return PlanUsageReport(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        percentages=percentages,
    )
