"""
Credit Ledger - remaining content credits per team
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, Dict, Any
from dataclasses import dataclass
import logging

from ..db.models import Plan, Team, CreditKind
from ..exceptions import NotFoundError
from .plan_catalog import default_credits

logger = logging.getLogger(__name__)

CREDIT_KINDS = [kind.value for kind in CreditKind]


@dataclass
class CreditUpdate:
    """Credit balances after a debit; ``warning`` is set when the write did not persist"""
    credits: Dict[str, int]
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"credits": self.credits, "warning": self.warning}


class CreditLedger:
    """
    Debits content credits after a successful content action

    Two concurrent debits can both read the same balance. The team row's
    version column turns the slower write into a conflict, which is reported
    as a warning instead of silently overwriting the faster one.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_team(self, team_id: int) -> Team:
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    def get_credits(self, team_id: int) -> Dict[str, int]:
        return self._get_team(team_id).credits

    def _stored_credits(self, team_id: int, fallback: Dict[str, int]) -> Dict[str, int]:
        """Balance as currently stored, e.g. after another writer won a conflict"""
        try:
            return self._get_team(team_id).credits
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Could not re-read credits for team {team_id}: {e}")
            return fallback

    def decrement(self, team_id: int, kind: str, amount: int = 1) -> CreditUpdate:
        """
        Debit ``amount`` credits of ``kind``, never going below zero

        Call only after the content action succeeded; nothing is reserved
        up front and a failed write does not undo the action.

        Args:
            team_id: Team ID
            kind: Credit kind (CreditKind value)
            amount: Units to debit (positive)

        Returns:
            CreditUpdate with the new balances, or the stored balances plus
            a warning when the write failed

        Raises:
            NotFoundError: If the team does not exist
            ValueError: If kind is unknown or amount is not positive
        """
        if kind not in CREDIT_KINDS:
            raise ValueError(f"Unknown credit kind: {kind}")
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive (got {amount})")

        team = self._get_team(team_id)
        previous = team.credits
        updated = dict(previous)
        updated[kind] = max(0, previous[kind] - amount)

        try:
            team.credits = updated
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Credit debit for team {team_id} not persisted ({kind} -{amount}): {e}")
            return CreditUpdate(
                credits=self._stored_credits(team_id, previous),
                warning="Your content was created, but the credit balance could not be updated.",
            )

        logger.info(f"Team {team_id} debited {amount} {kind}: {previous[kind]} -> {updated[kind]}")
        return CreditUpdate(credits=updated)

    def reset_credits(self, team_id: int, plan: Optional[Plan] = None) -> Dict[str, int]:
        """Reset a team's credits to the quotas of ``plan`` (its current plan by default)"""
        team = self._get_team(team_id)
        plan = plan or team.current_plan
        if plan is None:
            raise NotFoundError("Plan for team", team_id)

        team.credits = default_credits(plan)
        self.db.commit()
        logger.info(f"Reset credits for team {team_id} to {plan.name} quotas")
        return team.credits

    def clear_credits(self, team_id: int) -> Dict[str, int]:
        """Zero a single team's credits"""
        team = self._get_team(team_id)
        team.credits = {kind: 0 for kind in CREDIT_KINDS}
        self.db.commit()
        logger.warning(f"Cleared credits for team {team_id}")
        return team.credits

    def clear_all_credits(self) -> int:
        """Zero every team's credits; returns the number of teams touched"""
        teams = self.db.query(Team).all()
        for team in teams:
            team.credits = {kind: 0 for kind in CREDIT_KINDS}
        self.db.commit()
        logger.warning(f"Cleared credits for {len(teams)} team(s)")
        return len(teams)
