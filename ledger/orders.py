import json
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func

from extensions import db
from ledger.exceptions import NotFoundError, ValidationError
from ledger.funding import BalanceManager
from ledger.money import ZERO, commission_for, to_decimal, to_money, to_rate
from ledger.rates import CommissionRateHelper
from ledger.transaction import atomic
from models import OrderRecord, OrderSetting, OrderStatus, User
from logger import ledger_logger


def parse_description_commission(description: Optional[str]) -> Optional[Decimal]:
    """
    Legacy side-channel: a JSON object in the description carrying
    {"commission": n} or {"c": n}. Returns None when absent or not numeric.
    """
    if not description:
        return None
    try:
        parsed = json.loads(description)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None

    value = parsed.get("commission")
    if value is None:
        value = parsed.get("c")
    if value is None or isinstance(value, bool):
        return None
    try:
        return to_decimal(value)
    except ValueError:
        return None


class OrderLedgerHelper:
    """Order batches (settings), task records and the commission they earn."""

    # ------------------------------------------------------------------
    # Order settings
    # ------------------------------------------------------------------
    @staticmethod
    def _get_user(user_id: int) -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def create_order_setting(user_id: int, max_orders: int, commission_rate, order_type: str = 'pre-order',
                             amount=0, description: str = None) -> OrderSetting:
        """Create a batch and make it the user's current one in the same transaction."""
        user = OrderLedgerHelper._get_user(user_id)

        with atomic():
            setting = OrderSetting(
                user_id=user.id,
                max_orders=max_orders,
                commission_rate=to_rate(commission_rate),
                order_type=order_type or 'pre-order',
                amount=to_money(amount),
                description=description,
            )
            db.session.add(setting)
            db.session.flush()
            user.current_order_setting_id = setting.id

        current_app.logger.info(
            f"Order setting {setting.id} opened for user {user_id}: max_orders={max_orders} rate={commission_rate}"
        )
        return setting

    @staticmethod
    def update_order_setting(setting_id: int, max_orders: int = None, commission_rate=None,
                             description: str = None) -> OrderSetting:
        setting = db.session.get(OrderSetting, setting_id)
        if not setting:
            raise NotFoundError("Order setting not found")

        with atomic():
            if max_orders is not None:
                setting.max_orders = max_orders
            if commission_rate is not None:
                setting.commission_rate = to_rate(commission_rate)
            if description is not None:
                setting.description = description
        return setting

    @staticmethod
    def delete_order_setting(setting_id: int):
        """Delete a batch; if it was current, the next newest batch becomes current."""
        setting = db.session.get(OrderSetting, setting_id)
        if not setting:
            raise NotFoundError("Order setting not found")

        with atomic():
            user = db.session.get(User, setting.user_id)
            if user and user.current_order_setting_id == setting.id:
                replacement = (
                    OrderSetting.query.filter(OrderSetting.user_id == user.id, OrderSetting.id != setting.id)
                    .order_by(OrderSetting.created_at.desc(), OrderSetting.id.desc())
                    .first()
                )
                user.current_order_setting_id = replacement.id if replacement else None
                db.session.flush()
            db.session.delete(setting)

        current_app.logger.info(f"Order setting {setting_id} deleted")

    @staticmethod
    def get_current_setting(user_id: int) -> Optional[OrderSetting]:
        return OrderLedgerHelper._get_user(user_id).current_order_setting

    @staticmethod
    def list_settings(user_id: int):
        return (
            OrderSetting.query.filter_by(user_id=user_id)
            .order_by(OrderSetting.created_at.desc(), OrderSetting.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Order records
    # ------------------------------------------------------------------
    @staticmethod
    def list_records(user_id: int):
        return (
            OrderRecord.query.filter_by(user_id=user_id)
            .order_by(OrderRecord.created_at.desc(), OrderRecord.id.desc())
            .all()
        )

    @staticmethod
    def create_order_record(user_id: int, order_type: str, amount, status: str = OrderStatus.PENDING.value,
                            description: str = None, commission=None, commission_override=None):
        """
        Insert a task record. For completed records the user is credited in the same
        transaction with `commission` verbatim when it is non-zero, else amount * effective rate.
        The stored override only feeds the all-time aggregate, never this credit.
        Returns (record, credited_amount).
        """
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("amount must not be negative")
        user = OrderLedgerHelper._get_user(user_id)

        credit = to_money(commission) if commission is not None else ZERO
        if credit < 0:
            raise ValidationError("commission must not be negative")
        if credit == 0:
            credit = commission_for(amount, CommissionRateHelper.effective_rate(user.id))

        override = to_money(commission_override) if commission_override is not None \
            else parse_description_commission(description)

        is_completed = status == OrderStatus.COMPLETED.value
        credited = credit if is_completed and credit > 0 else ZERO

        with atomic():
            record = OrderRecord(
                user_id=user.id,
                order_type=order_type,
                amount=amount,
                status=status,
                description=description,
                commission_override=override,
            )
            db.session.add(record)
            db.session.flush()
            if credited > 0:
                BalanceManager.credit(user.id, credited)

        if credited > 0:
            ledger_logger.info(f"Order record {record.id}: credited {credited} to user {user_id}")
        return record, credited

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    @staticmethod
    def completed_in_batch(user_id: int, setting: OrderSetting) -> int:
        """Completed records created at or after the batch was opened."""
        return (
            db.session.query(func.count(OrderRecord.id))
            .filter(
                OrderRecord.user_id == user_id,
                OrderRecord.status == OrderStatus.COMPLETED.value,
                OrderRecord.created_at >= setting.created_at,
            )
            .scalar()
        ) or 0

    @staticmethod
    def current_order_number(user_id: int) -> Optional[int]:
        """Ordinal of the next task in the current batch, None when the user has no batch."""
        user = OrderLedgerHelper._get_user(user_id)
        setting = user.current_order_setting
        if not setting:
            return None
        return OrderLedgerHelper.completed_in_batch(user.id, setting) + 1

    @staticmethod
    def record_commission(record: OrderRecord, rate: Decimal) -> Decimal:
        override = record.commission_override
        if override is None:
            override = parse_description_commission(record.description)
        if override is not None:
            return to_money(override)
        return commission_for(record.amount, rate)

    @staticmethod
    def total_commission(user_id: int, rate: Decimal = None) -> Decimal:
        """All-time commission of completed records, valued at the current effective rate."""
        if rate is None:
            rate = CommissionRateHelper.effective_rate(user_id)
        records = OrderRecord.query.filter_by(user_id=user_id, status=OrderStatus.COMPLETED.value).all()
        total = ZERO
        for record in records:
            total += OrderLedgerHelper.record_commission(record, rate)
        return total

    @staticmethod
    def cumulative_opened(user_id: int) -> int:
        return int(
            db.session.query(func.coalesce(func.sum(OrderSetting.max_orders), 0))
            .filter(OrderSetting.user_id == user_id)
            .scalar()
        )

    @staticmethod
    def progress(user_id: int, global_rate: Decimal = None) -> Dict[str, Any]:
        """
        Batch progress and earnings for one user:
        total (current batch size), cumulative, completed, pending,
        totalCommission and currentOrderNumber.
        """
        user = OrderLedgerHelper._get_user(user_id)
        setting = user.current_order_setting

        if setting:
            completed_raw = OrderLedgerHelper.completed_in_batch(user.id, setting)
            total = setting.max_orders
            completed = min(completed_raw, total)
            current_number = completed_raw + 1
        else:
            total = completed = 0
            current_number = None

        if global_rate is None:
            global_rate = CommissionRateHelper.global_rate()
        rate = global_rate + CommissionRateHelper.user_rate(user)

        return {
            "total": total,
            "cumulative": OrderLedgerHelper.cumulative_opened(user.id),
            "completed": completed,
            "pending": max(0, total - completed),
            "totalCommission": OrderLedgerHelper.total_commission(user.id, rate),
            "currentOrderNumber": current_number,
        }
