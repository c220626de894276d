from decimal import Decimal
from typing import Optional

from flask import current_app

from extensions import db
from ledger.exceptions import NotFoundError, ValidationError
from ledger.money import ZERO, to_rate
from ledger.transaction import atomic
from models import CommissionRate, User


class CommissionRateHelper:
    """
    Global commission rate table plus per-user rate resolution.
    effective rate = active global rate + rate of the user's current order setting
    """

    @staticmethod
    def get_active_rate() -> Optional[CommissionRate]:
        return (
            CommissionRate.query.filter_by(is_active=True)
            .order_by(CommissionRate.updated_at.desc(), CommissionRate.id.desc())
            .first()
        )

    @staticmethod
    def global_rate() -> Decimal:
        active = CommissionRateHelper.get_active_rate()
        return to_rate(active.rate) if active else ZERO

    @staticmethod
    def user_rate(user: User) -> Decimal:
        setting = user.current_order_setting if user else None
        return to_rate(setting.commission_rate) if setting else ZERO

    @staticmethod
    def effective_rate(user_id: int, global_rate: Decimal = None) -> Decimal:
        """Recomputed on every call; pass `global_rate` to reuse one lookup across many users."""
        user = db.session.get(User, user_id)
        if global_rate is None:
            global_rate = CommissionRateHelper.global_rate()
        return global_rate + CommissionRateHelper.user_rate(user)

    @staticmethod
    def _deactivate_others(exclude_id: int = None):
        query = CommissionRate.query.filter(CommissionRate.is_active.is_(True))
        if exclude_id is not None:
            query = query.filter(CommissionRate.id != exclude_id)
        query.update({CommissionRate.is_active: False}, synchronize_session="fetch")

    @staticmethod
    def create_rate(rate, is_active: bool = True, description: str = None) -> CommissionRate:
        rate = to_rate(rate)
        if rate < 0:
            raise ValidationError("rate must not be negative")

        with atomic():
            if is_active:
                CommissionRateHelper._deactivate_others()
            row = CommissionRate(rate=rate, is_active=bool(is_active), description=description)
            db.session.add(row)

        current_app.logger.info(f"Commission rate {row.id} created: rate={rate} active={row.is_active}")
        return row

    @staticmethod
    def update_rate(rate_id: int, rate, is_active: bool = None, description: str = None) -> CommissionRate:
        row = db.session.get(CommissionRate, rate_id)
        if not row:
            raise NotFoundError("Commission rate not found")
        rate = to_rate(rate)
        if rate < 0:
            raise ValidationError("rate must not be negative")

        with atomic():
            becomes_active = is_active if is_active is not None else row.is_active
            if becomes_active:
                CommissionRateHelper._deactivate_others(exclude_id=row.id)
            row.rate = rate
            if is_active is not None:
                row.is_active = is_active
            if description is not None:
                row.description = description

        current_app.logger.info(f"Commission rate {row.id} updated: rate={rate} active={row.is_active}")
        return row

    @staticmethod
    def delete_rate(rate_id: int):
        row = db.session.get(CommissionRate, rate_id)
        if not row:
            raise NotFoundError("Commission rate not found")
        with atomic():
            db.session.delete(row)
        current_app.logger.info(f"Commission rate {rate_id} deleted")
