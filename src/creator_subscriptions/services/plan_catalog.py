"""
Plan Catalog - plan tier definitions, limits and plan validation rules
"""
from sqlalchemy.orm import Session
from sqlalchemy import case
from decimal import Decimal
from pathlib import Path
from typing import Optional, Dict, List, Any
import logging
import yaml

from ..db.models import (
    Plan, PlanName, Team, Subscription, CreditKind, UNLIMITED_SENTINEL, RESOURCE_LIMIT_COLUMNS,
)
from ..exceptions import InconsistentPlanStateError, NotFoundError, PlanValidationError
from ..schemas import PlanCreate, PlanUpdate

logger = logging.getLogger(__name__)

# Display order for plan listings
PLAN_ORDER = [PlanName.FREE.value, PlanName.BASIC.value, PlanName.PRO.value, PlanName.ENTERPRISE.value]

# Plans that ship with the product and can never be deleted
SYSTEM_PLANS = [PlanName.FREE.value, PlanName.BASIC.value, PlanName.PRO.value]


class Limit:
    """
    A plan limit: either a finite ceiling or unlimited

    Stored values at or above ``UNLIMITED_SENTINEL`` (or NULL) are read as
    unlimited, so a comparison never depends on how large the sentinel is.
    """

    __slots__ = ("value",)

    def __init__(self, value: Optional[int]):
        if value is not None and value < 0:
            raise ValueError(f"Limit cannot be negative: {value}")
        self.value = value

    @classmethod
    def finite(cls, value: int) -> "Limit":
        return cls(int(value))

    @classmethod
    def unlimited(cls) -> "Limit":
        return cls(None)

    @classmethod
    def from_stored(cls, value: Optional[int]) -> "Limit":
        if value is None or value >= UNLIMITED_SENTINEL:
            return cls.unlimited()
        return cls.finite(value)

    @property
    def is_unlimited(self) -> bool:
        return self.value is None

    def is_reached(self, usage: int) -> bool:
        """True when ``usage`` leaves no room for one more unit"""
        if self.is_unlimited:
            return False
        return usage >= self.value

    def to_stored(self) -> int:
        return UNLIMITED_SENTINEL if self.is_unlimited else self.value

    def to_display(self) -> Optional[int]:
        """JSON-friendly form: the number, or None for unlimited"""
        return self.value

    def __eq__(self, other):
        return isinstance(other, Limit) and self.value == other.value

    def __hash__(self):
        return hash(self.value)

    def __str__(self):
        return "unlimited" if self.is_unlimited else str(self.value)

    def __repr__(self):
        return "Limit.unlimited()" if self.is_unlimited else f"Limit.finite({self.value})"


class PlanLimits:
    """All limits of one plan, keyed by resource or credit kind"""

    def __init__(self, limits: Dict[str, Limit]):
        self._limits = dict(limits)

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanLimits":
        limits = {
            resource: Limit.from_stored(getattr(plan, column))
            for resource, column in RESOURCE_LIMIT_COLUMNS.items()
        }
        for kind in CreditKind:
            limits[kind.value] = Limit.from_stored(getattr(plan, kind.value))
        return cls(limits)

    def limit_for(self, kind: str) -> Limit:
        """
        Get the limit for a resource (members/brands/themes/personas) or credit kind

        Raises:
            ValueError: If the kind is unknown
        """
        if kind not in self._limits:
            raise ValueError(f"Unknown resource kind: {kind}")
        return self._limits[kind]

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {kind: limit.to_display() for kind, limit in self._limits.items()}


def validate_plan_logic(plan_data: Dict[str, Any]) -> List[str]:
    """
    Check business rules a plan definition must satisfy

    Args:
        plan_data: Full plan field mapping (snake_case column names)

    Returns:
        List of error messages; empty when the plan is consistent
    """
    errors = []
    name = plan_data.get("name")
    price = float(plan_data.get("price") or 0)
    trial_days = plan_data.get("trial_days") or 0
    max_members = plan_data.get("max_members") or 0

    if name == PlanName.FREE.value and price > 0:
        errors.append("Free plan cannot have a price greater than zero")

    if name != PlanName.FREE.value and price <= 0:
        errors.append("Paid plans must have a price greater than zero")

    if name != PlanName.FREE.value and trial_days > 0:
        errors.append("Only the free plan can have a trial period")

    # Tier hierarchy: BASIC < PRO
    if name == PlanName.BASIC.value:
        if max_members > 15:
            errors.append("Basic plan cannot have more than 15 members")
        if price > 80:
            errors.append("Basic plan cannot cost more than 80")

    if name == PlanName.PRO.value:
        if max_members <= 10:
            errors.append("Pro plan must allow more members than the basic plan")
        if price <= 60:
            errors.append("Pro plan must cost more than the basic plan")

    if (plan_data.get("quick_content_creations") or 0) > (plan_data.get("custom_content_suggestions") or 0):
        errors.append("Quick content creations must not exceed custom content suggestions")

    if (plan_data.get("content_plans") or 0) > (plan_data.get("content_reviews") or 0):
        errors.append("Content plans must not exceed content reviews")

    return errors


def validate_plan_deletion(plan: Plan, teams_count: int, active_subscriptions: int) -> List[str]:
    """Return the reasons ``plan`` cannot be deleted (empty list if it can)"""
    errors = []

    if plan.name in SYSTEM_PLANS:
        errors.append("System plans cannot be deleted")

    if teams_count > 0:
        errors.append(f"Cannot delete a plan used by {teams_count} team(s)")

    if active_subscriptions > 0:
        errors.append(f"Cannot delete a plan with {active_subscriptions} active subscription(s)")

    return errors


def default_credits(plan: Plan) -> Dict[str, int]:
    """Starting credit balances for a team on ``plan``: its four content quotas"""
    return {
        kind.value: Limit.from_stored(getattr(plan, kind.value)).to_stored()
        for kind in CreditKind
    }


def serialize_plan(plan: Plan) -> Dict[str, Any]:
    """JSON-safe representation of a plan row"""
    return {
        "id": plan.id,
        "name": plan.name,
        "display_name": plan.display_name,
        "description": plan.description,
        "price": float(plan.price or 0),
        "trial_days": plan.trial_days,
        "is_active": plan.is_active,
        "limits": PlanLimits.from_plan(plan).to_dict(),
    }


class PlanCatalog:
    """Queryable plan definitions backed by the ``plans`` table"""

    def __init__(self, db: Session, cache=None):
        """
        Initialize the catalog

        Args:
            db: Database session
            cache: Optional PlanCache for serialized listings
        """
        self.db = db
        self.cache = cache

    def _ordering(self):
        return case(
            {name: index for index, name in enumerate(PLAN_ORDER)},
            value=Plan.name,
            else_=len(PLAN_ORDER),
        )

    def get_by_id(self, plan_id: int) -> Optional[Plan]:
        return self.db.query(Plan).filter(Plan.id == plan_id).first()

    def get_by_name(self, name: str) -> Optional[Plan]:
        return self.db.query(Plan).filter(Plan.name == name).first()

    def get_free_plan(self) -> Plan:
        """
        Get the FREE plan, which every team falls back to

        Raises:
            InconsistentPlanStateError: If the catalog has no FREE plan
        """
        plan = self.get_by_name(PlanName.FREE.value)
        if plan is None:
            logger.error("FREE plan missing from catalog")
            raise InconsistentPlanStateError("FREE plan is not configured in the plan catalog")
        return plan

    def list_active(self) -> List[Plan]:
        """Active plans ordered FREE, BASIC, PRO, ENTERPRISE, then by name"""
        return (
            self.db.query(Plan)
            .filter(Plan.is_active.is_(True))
            .order_by(self._ordering(), Plan.name)
            .all()
        )

    def list_paid(self) -> List[Plan]:
        return [plan for plan in self.list_active() if plan.name != PlanName.FREE.value]

    def list_active_serialized(self) -> List[Dict[str, Any]]:
        """Serialized active plans, served from the plan cache when available"""
        if self.cache is not None:
            cached = self.cache.get_active_plans()
            if cached is not None:
                return cached

        plans = [serialize_plan(plan) for plan in self.list_active()]
        if self.cache is not None:
            self.cache.set_active_plans(plans)
        return plans

    def _invalidate(self):
        if self.cache is not None:
            self.cache.invalidate()

    def create_plan(self, data: PlanCreate) -> Plan:
        """
        Create a plan after validating its business rules

        Raises:
            PlanValidationError: If the definition breaks a rule or the name is taken
        """
        plan_data = data.model_dump()
        errors = validate_plan_logic(plan_data)
        if self.get_by_name(data.name):
            errors.append(f"A plan named {data.name} already exists")
        if errors:
            raise PlanValidationError(errors)

        plan_data["price"] = Decimal(str(plan_data["price"]))
        plan = Plan(**plan_data)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        self._invalidate()

        logger.info(f"Created plan {plan.name} (id={plan.id})")
        return plan

    def update_plan(self, plan_id: int, data: PlanUpdate) -> Plan:
        """Apply a partial update; the merged definition must still pass validation"""
        plan = self.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)

        changes = data.model_dump(exclude_unset=True)
        merged = {column: getattr(plan, column) for column in PlanCreate.model_fields}
        merged.update(changes)

        errors = validate_plan_logic(merged)
        new_name = changes.get("name")
        if new_name and new_name != plan.name and self.get_by_name(new_name):
            errors.append(f"A plan named {new_name} already exists")
        if errors:
            raise PlanValidationError(errors)

        for field, value in changes.items():
            if field == "price":
                value = Decimal(str(value))
            setattr(plan, field, value)

        self.db.commit()
        self.db.refresh(plan)
        self._invalidate()

        logger.info(f"Updated plan {plan.name} (id={plan.id}): {sorted(changes)}")
        return plan

    def delete_plan(self, plan_id: int) -> None:
        """
        Delete an unused, non-system plan

        Raises:
            NotFoundError: If the plan does not exist
            PlanValidationError: If the plan is a system plan or still in use
        """
        plan = self.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)

        teams_count = self.db.query(Team).filter(Team.current_plan_id == plan.id).count()
        active_subscriptions = self.db.query(Subscription).filter(
            Subscription.plan_id == plan.id,
            Subscription.is_active.is_(True),
        ).count()

        errors = validate_plan_deletion(plan, teams_count, active_subscriptions)
        if errors:
            raise PlanValidationError(errors)

        self.db.delete(plan)
        self.db.commit()
        self._invalidate()
        logger.info(f"Deleted plan {plan.name} (id={plan_id})")

    def seed_from_yaml(self, path: Optional[str] = None) -> List[Plan]:
        """
        Create catalog plans from the YAML seed file; existing plans are left as-is

        Args:
            path: Seed file path (defaults to config.PLANS_CONFIG_PATH)

        Returns:
            The plans that were created
        """
        if path is None:
            from ..config import config
            path = config.PLANS_CONFIG_PATH

        with open(Path(path), "r") as f:
            seed = yaml.safe_load(f) or {}

        created = []
        for name, definition in (seed.get("plans") or {}).items():
            if self.get_by_name(name):
                continue

            fields = dict(definition.get("limits", {}))
            fields.update(definition.get("quotas", {}))
            plan = Plan(
                name=name,
                display_name=definition.get("display_name", name.title()),
                description=definition.get("description"),
                price=Decimal(str(definition.get("price", 0))),
                trial_days=definition.get("trial_days", 0),
                is_active=definition.get("is_active", True),
                **fields,
            )
            self.db.add(plan)
            created.append(plan)

        if created:
            self.db.commit()
            self._invalidate()
            logger.info(f"Seeded plans: {', '.join(plan.name for plan in created)}")
        return created
