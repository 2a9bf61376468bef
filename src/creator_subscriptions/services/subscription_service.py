"""
Subscription Service - team subscription status, trial expiry and plan assignment
"""
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Callable, List
from dataclasses import dataclass
import logging
import math

from ..db.models import Plan, PlanName, Team, Subscription, SubscriptionStatus as SubscriptionState
from ..exceptions import NotFoundError, PlanValidationError
from .plan_catalog import PlanCatalog, default_credits, serialize_plan

logger = logging.getLogger(__name__)

# Paid subscriptions run in 30-day periods
PAID_PERIOD_DAYS = 30

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class StatusDecision:
    """Outcome of evaluating a subscription at a point in time (no side effects)"""
    is_active: bool = True
    is_expired: bool = False
    is_trial: bool = False
    can_access: bool = True
    days_remaining: Optional[int] = None
    trial_ended: bool = False
    expire_subscription: bool = False


@dataclass
class SubscriptionStatus:
    """Resolved access status for a team"""
    is_active: bool
    is_expired: bool
    is_trial: bool
    can_access: bool
    plan: Plan
    days_remaining: Optional[int] = None
    subscription: Optional[Subscription] = None
    trial_ended: bool = False

    def to_dict(self) -> Dict[str, Any]:
        subscription = None
        if self.subscription is not None:
            subscription = {
                "id": self.subscription.id,
                "plan_id": self.subscription.plan_id,
                "status": self.subscription.status,
                "start_date": self.subscription.start_date,
                "trial_end_date": self.subscription.trial_end_date,
                "end_date": self.subscription.end_date,
                "is_active": self.subscription.is_active,
            }
        return {
            "is_active": self.is_active,
            "is_expired": self.is_expired,
            "is_trial": self.is_trial,
            "can_access": self.can_access,
            "days_remaining": self.days_remaining,
            "trial_ended": self.trial_ended,
            "plan": serialize_plan(self.plan),
            "subscription": subscription,
        }


def compute_status(subscription: Optional[Subscription], now: datetime) -> StatusDecision:
    """
    Decide a team's access from its governing subscription

    Args:
        subscription: The team's active subscription, or its most recent one
            when none is active
        now: Evaluation time (UTC)

    Returns:
        StatusDecision; ``expire_subscription`` is set when a TRIAL has just
        run out and still needs to be persisted as EXPIRED
    """
    decision = StatusDecision()
    if subscription is None:
        return decision

    if subscription.status == SubscriptionState.TRIAL.value and subscription.is_active:
        if subscription.trial_end_date is None:
            decision.is_trial = True
            return decision

        if now > subscription.trial_end_date:
            decision.is_expired = True
            decision.can_access = False
            decision.trial_ended = True
            decision.expire_subscription = True
            return decision

        remaining = (subscription.trial_end_date - now).total_seconds() / SECONDS_PER_DAY
        decision.is_trial = True
        decision.days_remaining = max(0, math.ceil(remaining))
        return decision

    # A trial already marked EXPIRED keeps blocking access until a new subscription exists
    if subscription.status == SubscriptionState.EXPIRED.value and subscription.trial_end_date is not None:
        decision.is_expired = True
        decision.can_access = False
        decision.trial_ended = True

    return decision


class SubscriptionStatusResolver:
    """Computes whether a team may use the product"""

    def __init__(self, db: Session, catalog: Optional[PlanCatalog] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        """
        Initialize resolver

        Args:
            db: Database session
            catalog: Plan catalog (created from db if not provided)
            clock: Returns the current UTC time
        """
        self.db = db
        self.catalog = catalog or PlanCatalog(db)
        self.clock = clock

    def _get_team(self, team_id: int) -> Team:
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    def _governing_subscription(self, team_id: int) -> Optional[Subscription]:
        """Most recent active subscription, else the most recent one of any state"""
        active = self.db.query(Subscription).filter(
            Subscription.team_id == team_id,
            Subscription.is_active.is_(True),
        ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()
        if active is not None:
            return active

        return self.db.query(Subscription).filter(
            Subscription.team_id == team_id,
        ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()

    def ensure_plan_assigned(self, team_id: int) -> Plan:
        """
        Make sure the team points at a plan, assigning FREE when it has none

        Returns:
            The team's current plan

        Raises:
            NotFoundError: If the team does not exist
            InconsistentPlanStateError: If the FREE plan is missing
        """
        team = self._get_team(team_id)
        if team.current_plan is not None:
            return team.current_plan

        free_plan = self.catalog.get_free_plan()
        team.current_plan_id = free_plan.id
        self.db.commit()
        self.db.refresh(team)

        logger.info(f"Assigned FREE plan to team {team_id}")
        return free_plan

    def resolve(self, team_id: int) -> SubscriptionStatus:
        """
        Resolve the subscription status of a team

        Expiring a trial downgrades the team to FREE and marks the subscription
        EXPIRED/inactive; later calls find nothing left to transition.

        Args:
            team_id: Team ID

        Returns:
            SubscriptionStatus

        Raises:
            NotFoundError: If the team does not exist
            InconsistentPlanStateError: If no plan can be resolved
        """
        team = self._get_team(team_id)
        plan = team.current_plan
        if plan is None:
            plan = self.ensure_plan_assigned(team_id)

        subscription = self._governing_subscription(team_id)
        decision = compute_status(subscription, self.clock())

        if decision.expire_subscription:
            plan = self._expire_trial(team, subscription)

        return SubscriptionStatus(
            is_active=decision.is_active,
            is_expired=decision.is_expired,
            is_trial=decision.is_trial,
            can_access=decision.can_access,
            plan=plan,
            days_remaining=decision.days_remaining,
            subscription=subscription,
            trial_ended=decision.trial_ended,
        )

    def _expire_trial(self, team: Team, subscription: Subscription) -> Plan:
        """Persist a TRIAL -> EXPIRED transition; returns the team's plan afterwards"""
        free_plan = self.catalog.get_free_plan()
        downgrade_team_to_free(team, free_plan)

        subscription.status = SubscriptionState.EXPIRED.value
        subscription.is_active = False
        self.db.commit()
        self.db.refresh(team)

        logger.info(f"Trial expired for team {team.id} (subscription {subscription.id})")
        return team.current_plan


def downgrade_team_to_free(team: Team, free_plan: Plan) -> None:
    """Point ``team`` at FREE and clear its trial flag; credits are left untouched"""
    if team.current_plan_id != free_plan.id:
        team.current_plan_id = free_plan.id
    if team.is_trial_active:
        team.is_trial_active = False


class SubscriptionService:
    """Write-side operations on team plans and subscriptions"""

    def __init__(self, db: Session, catalog: Optional[PlanCatalog] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.catalog = catalog or PlanCatalog(db)
        self.clock = clock
        self.resolver = SubscriptionStatusResolver(db, catalog=self.catalog, clock=clock)

    def create_team(self, name: str, plan_name: Optional[str] = PlanName.FREE.value,
                    admin_user_id: Optional[int] = None) -> Team:
        """
        Create a team with a plan assigned from the start

        Args:
            name: Team name
            plan_name: Plan to subscribe the team to (None only assigns FREE)
            admin_user_id: Team admin

        Returns:
            The new team
        """
        team = Team(name=name, admin_user_id=admin_user_id)
        self.db.add(team)
        self.db.commit()
        self.db.refresh(team)

        self.resolver.ensure_plan_assigned(team.id)
        if plan_name:
            self.create_team_subscription(team.id, plan_name)

        logger.info(f"Created team {team.id} ({name}) on plan {plan_name or PlanName.FREE.value}")
        return team

    def update_team_plan(self, team_id: int, plan_id: int) -> Team:
        """Point a team at another plan without touching its subscriptions"""
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            raise NotFoundError("Team", team_id)
        if self.catalog.get_by_id(plan_id) is None:
            raise NotFoundError("Plan", plan_id)

        team.current_plan_id = plan_id
        self.db.commit()
        self.db.refresh(team)
        return team

    def create_team_subscription(self, team_id: int, plan_name: str) -> Subscription:
        """
        Start a new subscription for a team, replacing the active one

        Plans with trial days start as TRIAL; paid plans run for 30 days.
        The team's credits are reset to the new plan's quotas.

        Raises:
            NotFoundError: If the team or plan does not exist
            PlanValidationError: If the team already used its trial
        """
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            raise NotFoundError("Team", team_id)

        plan = self.catalog.get_by_name(plan_name)
        if plan is None or not plan.is_active:
            raise NotFoundError("Plan", plan_name)

        if plan.trial_days > 0:
            previous_trial = self.db.query(Subscription).filter(
                Subscription.team_id == team_id,
                Subscription.trial_end_date.isnot(None),
            ).first()
            if previous_trial is not None:
                raise PlanValidationError([f"Team {team_id} has already used its trial period"])

        for previous in self.db.query(Subscription).filter(
            Subscription.team_id == team_id,
            Subscription.is_active.is_(True),
        ).all():
            previous.is_active = False

        now = self.clock()
        is_trial = plan.trial_days > 0
        trial_end_date = now + timedelta(days=plan.trial_days) if is_trial else None
        end_date = None if plan.name == PlanName.FREE.value else now + timedelta(days=PAID_PERIOD_DAYS)

        subscription = Subscription(
            team_id=team_id,
            plan_id=plan.id,
            status=SubscriptionState.TRIAL.value if is_trial else SubscriptionState.ACTIVE.value,
            start_date=now,
            trial_end_date=trial_end_date,
            end_date=end_date,
            is_active=True,
        )
        self.db.add(subscription)

        team.current_plan_id = plan.id
        team.is_trial_active = is_trial
        team.trial_ends_at = trial_end_date
        team.credits = default_credits(plan)

        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            f"Team {team_id} subscribed to {plan.name} "
            f"(status={subscription.status}, trial_end={trial_end_date})"
        )
        return subscription

    def expire_overdue_trials(self, now: Optional[datetime] = None) -> int:
        """
        Sweep all teams for trials past their end date

        Returns:
            Number of subscriptions moved to EXPIRED
        """
        now = now or self.clock()
        overdue: List[Subscription] = self.db.query(Subscription).filter(
            Subscription.status == SubscriptionState.TRIAL.value,
            Subscription.is_active.is_(True),
            Subscription.trial_end_date < now,
        ).all()

        free_plan = self.catalog.get_free_plan() if overdue else None
        for subscription in overdue:
            subscription.status = SubscriptionState.EXPIRED.value
            subscription.is_active = False
            downgrade_team_to_free(subscription.team, free_plan)

        stale_teams = self.db.query(Team).filter(
            Team.is_trial_active.is_(True),
            Team.trial_ends_at < now,
        ).all()
        for team in stale_teams:
            team.is_trial_active = False

        if overdue or stale_teams:
            self.db.commit()
            logger.info(f"Expired {len(overdue)} overdue trial(s), cleared {len(stale_teams)} team trial flag(s)")
        return len(overdue)
