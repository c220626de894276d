from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func

from extensions import db
from ledger.exceptions import NotFoundError
from ledger.money import ZERO, to_money, to_rate
from ledger.orders import OrderLedgerHelper
from ledger.transaction import atomic
from models import InjectionPlan, RechargeRequest, RequestStatus, User


class InjectionPlanHelper:
    """
    Injection plans: a required top-up tied to a task ordinal
    (or to any ordinal when the plan has none).
    """

    @staticmethod
    def total_approved_recharges(user_id: int) -> Decimal:
        total = (
            db.session.query(func.coalesce(func.sum(RechargeRequest.amount), 0))
            .filter(
                RechargeRequest.user_id == user_id,
                RechargeRequest.status == RequestStatus.APPROVED.value,
            )
            .scalar()
        )
        return to_money(total)

    @staticmethod
    def matching_plan(user_id: int, current_order_number: Optional[int]) -> Optional[InjectionPlan]:
        """First active plan (in insertion order) whose ordinal is unset or equals the current one."""
        if current_order_number is None:
            return None
        plans = (
            InjectionPlan.query.filter_by(user_id=user_id, is_active=True)
            .order_by(InjectionPlan.id.asc())
            .all()
        )
        for plan in plans:
            if plan.order_number is None or plan.order_number == current_order_number:
                return plan
        return None

    @staticmethod
    def shortfall(user_id: int, current_order_number: Optional[int] = None,
                  total_recharged: Decimal = None) -> Optional[Decimal]:
        """
        max(0, injection_amount - approved recharges) for the matching plan.
        None means unknown: no current batch or no matching plan.
        """
        if current_order_number is None:
            current_order_number = OrderLedgerHelper.current_order_number(user_id)
        plan = InjectionPlanHelper.matching_plan(user_id, current_order_number)
        if plan is None:
            return None
        if total_recharged is None:
            total_recharged = InjectionPlanHelper.total_approved_recharges(user_id)
        return max(ZERO, to_money(plan.injection_amount) - total_recharged)

    @staticmethod
    def plan_status(plan: InjectionPlan, current_order_number: Optional[int]) -> Optional[str]:
        if current_order_number is None:
            return None
        if plan.order_number:
            return 'completed' if current_order_number > plan.order_number else 'pending'
        # generic plan: reached once at least one task was completed
        return 'completed' if current_order_number > 1 else 'pending'

    @staticmethod
    def list_plans_with_status(user_id: int):
        plans = (
            InjectionPlan.query.filter_by(user_id=user_id)
            .order_by(InjectionPlan.created_at.desc(), InjectionPlan.id.desc())
            .all()
        )
        if db.session.get(User, user_id):
            current_number = OrderLedgerHelper.current_order_number(user_id)
        else:
            current_number = None

        result = []
        for plan in plans:
            item = plan.to_dict()
            item["status"] = InjectionPlanHelper.plan_status(plan, current_number)
            result.append(item)
        return result

    @staticmethod
    def create_plan(user_id: int, commission_rate, injection_amount, order_number: int = None,
                    is_active: bool = True) -> InjectionPlan:
        if not db.session.get(User, user_id):
            raise NotFoundError("User not found")

        with atomic():
            plan = InjectionPlan(
                user_id=user_id,
                order_number=order_number or None,
                commission_rate=to_rate(commission_rate),
                injection_amount=to_money(injection_amount),
                is_active=is_active is not False,
            )
            db.session.add(plan)

        current_app.logger.info(
            f"Injection plan {plan.id} created for user {user_id}: ordinal={plan.order_number} "
            f"amount={plan.injection_amount}"
        )
        return plan

    @staticmethod
    def update_plan(plan_id: int, order_number: int = None, commission_rate=None, injection_amount=None,
                    is_active: bool = None) -> InjectionPlan:
        plan = db.session.get(InjectionPlan, plan_id)
        if not plan:
            raise NotFoundError("Injection plan not found")

        with atomic():
            if order_number is not None:
                plan.order_number = order_number
            if commission_rate is not None:
                plan.commission_rate = to_rate(commission_rate)
            if injection_amount is not None:
                plan.injection_amount = to_money(injection_amount)
            if is_active is not None:
                plan.is_active = is_active
        return plan

    @staticmethod
    def delete_plan(plan_id: int):
        plan = db.session.get(InjectionPlan, plan_id)
        if not plan:
            raise NotFoundError("Injection plan not found")
        with atomic():
            db.session.delete(plan)
