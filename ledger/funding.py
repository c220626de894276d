from decimal import Decimal
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy import or_

from extensions import db
from ledger.exceptions import (
    AlreadyProcessedError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ledger.money import to_money
from ledger.transaction import atomic
from logger import ledger_logger
from models import RechargeRequest, RequestStatus, User, WithdrawRequest

REVIEW_STATUSES = (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value)


def _acting_sub_user_id(actor) -> Optional[int]:
    if actor is not None and getattr(actor, "is_sub_user", False) and actor.id:
        return actor.id
    return None


# ==========================================================
#                  BALANCE MANAGER
# ==========================================================
class BalanceManager:
    """Balance mutations as single UPDATE statements inside the caller's transaction."""

    @staticmethod
    def credit(user_id: int, amount: Decimal):
        updated = (
            User.query.filter(User.id == user_id)
            .update({User.balance: User.balance + amount}, synchronize_session=False)
        )
        if not updated:
            raise NotFoundError("User not found")

    @staticmethod
    def debit(user_id: int, amount: Decimal):
        """Debit only when the balance covers the amount; concurrent debits cannot overdraw."""
        updated = (
            User.query.filter(User.id == user_id, User.balance >= amount)
            .update({User.balance: User.balance - amount}, synchronize_session=False)
        )
        if not updated:
            raise InsufficientBalanceError("Insufficient balance for withdraw")

    @staticmethod
    def claim_pending(model, request_id: int, values: dict):
        """
        Move a pending request to its reviewed state. The status check is part of the
        UPDATE so a request can only ever leave `pending` once.
        """
        updated = (
            model.query.filter(model.id == request_id, model.status == RequestStatus.PENDING.value)
            .update(values, synchronize_session=False)
        )
        if not updated:
            raise AlreadyProcessedError()


# ==========================================================
#                  WITHDRAWALS
# ==========================================================
class WithdrawalManager:

    @staticmethod
    def submit(user_id: int, amount, pay_password: str, wallet_address: str = None) -> Tuple[WithdrawRequest, User]:
        """Verify the pay password and reserve the amount: debit and pending request commit together."""
        amount = to_money(amount)
        minimum = current_app.config["MIN_WITHDRAW_AMOUNT"]
        if amount < minimum:
            raise ValidationError(f"Minimum withdrawal amount is {minimum}")

        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        if not pay_password or not user.check_pay_password(pay_password):
            raise ValidationError("Payment password is incorrect")
        if to_money(user.balance) < amount:
            raise InsufficientBalanceError("Insufficient balance for withdraw")

        wallet_address = wallet_address or user.wallet_address

        with atomic():
            BalanceManager.debit(user.id, amount)
            user.wallet_address = wallet_address
            withdraw = WithdrawRequest(
                user_id=user.id,
                amount=amount,
                status=RequestStatus.PENDING.value,
                wallet_address=wallet_address,
            )
            db.session.add(withdraw)

        ledger_logger.info(f"Withdraw {withdraw.id}: reserved {amount} from user {user.id}")
        return withdraw, user

    @staticmethod
    def review(withdraw_id: int, status: str, note: str = None, actor=None) -> Tuple[WithdrawRequest, Optional[User]]:
        """
        approved: status flip only (funds were reserved at submit time).
        rejected: status flip and the reserved amount is credited back.
        """
        if status not in REVIEW_STATUSES:
            raise ValidationError("status must be approved or rejected")

        withdraw = db.session.get(WithdrawRequest, withdraw_id)
        if not withdraw:
            raise NotFoundError("Withdraw request not found")
        if withdraw.status != RequestStatus.PENDING.value:
            raise AlreadyProcessedError("Withdraw request already processed")

        values = {WithdrawRequest.status: status, WithdrawRequest.note: note}
        sub_user_id = _acting_sub_user_id(actor)
        if sub_user_id:
            values[WithdrawRequest.processed_by_sub_user_id] = sub_user_id

        refunded_user = None
        try:
            with atomic():
                BalanceManager.claim_pending(WithdrawRequest, withdraw.id, values)
                if sub_user_id:
                    User.query.filter(User.id == withdraw.user_id).update(
                        {User.managed_by_sub_user_id: sub_user_id}, synchronize_session=False
                    )
                if status == RequestStatus.REJECTED.value:
                    BalanceManager.credit(withdraw.user_id, to_money(withdraw.amount))
        except AlreadyProcessedError:
            raise AlreadyProcessedError("Withdraw request already processed")

        db.session.refresh(withdraw)
        if status == RequestStatus.REJECTED.value:
            refunded_user = db.session.get(User, withdraw.user_id)
            ledger_logger.info(f"Withdraw {withdraw.id} rejected: {withdraw.amount} returned to user {withdraw.user_id}")
        else:
            ledger_logger.info(f"Withdraw {withdraw.id} approved")
        return withdraw, refunded_user

    @staticmethod
    def list_for(actor=None):
        """Everything for the admin; a sub-user sees requests it processed or of members it manages."""
        query = WithdrawRequest.query
        sub_user_id = _acting_sub_user_id(actor)
        if sub_user_id:
            managed_ids = db.select(User.id).where(User.managed_by_sub_user_id == sub_user_id)
            query = query.filter(or_(
                WithdrawRequest.processed_by_sub_user_id == sub_user_id,
                WithdrawRequest.user_id.in_(managed_ids),
            ))
        return query.order_by(WithdrawRequest.created_at.desc(), WithdrawRequest.id.desc()).all()

    @staticmethod
    def list_for_user(user_id: int):
        return (
            WithdrawRequest.query.filter_by(user_id=user_id)
            .order_by(WithdrawRequest.created_at.desc(), WithdrawRequest.id.desc())
            .all()
        )


# ==========================================================
#                  RECHARGES
# ==========================================================
class RechargeManager:

    @staticmethod
    def create(user_id: int, amount, voucher_image: str = None, actor=None) -> RechargeRequest:
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("amount must not be negative")
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        sub_user_id = _acting_sub_user_id(actor)
        with atomic():
            recharge = RechargeRequest(
                user_id=user.id,
                amount=amount,
                status=RequestStatus.PENDING.value,
                voucher_image=voucher_image if voucher_image and voucher_image.strip() else None,
            )
            if sub_user_id:
                recharge.created_by_sub_user_id = sub_user_id
                user.managed_by_sub_user_id = sub_user_id
            db.session.add(recharge)

        current_app.logger.info(f"Recharge {recharge.id} requested for user {user.id}: amount={amount}")
        return recharge

    @staticmethod
    def review(recharge_id: int, status: str, note: str = None, actor=None) -> RechargeRequest:
        """approved credits the balance; rejected leaves it untouched."""
        if status not in REVIEW_STATUSES:
            raise ValidationError("status must be approved or rejected")

        recharge = db.session.get(RechargeRequest, recharge_id)
        if not recharge:
            raise NotFoundError("Recharge request not found")
        if recharge.status != RequestStatus.PENDING.value:
            raise AlreadyProcessedError("Recharge request already processed")

        values = {RechargeRequest.status: status, RechargeRequest.note: note}
        sub_user_id = _acting_sub_user_id(actor)
        if sub_user_id and not recharge.created_by_sub_user_id:
            values[RechargeRequest.created_by_sub_user_id] = sub_user_id

        try:
            with atomic():
                BalanceManager.claim_pending(RechargeRequest, recharge.id, values)
                if status == RequestStatus.APPROVED.value:
                    BalanceManager.credit(recharge.user_id, to_money(recharge.amount))
        except AlreadyProcessedError:
            raise AlreadyProcessedError("Recharge request already processed")

        db.session.refresh(recharge)
        if status == RequestStatus.APPROVED.value:
            ledger_logger.info(f"Recharge {recharge.id} approved: credited {recharge.amount} to user {recharge.user_id}")
        else:
            ledger_logger.info(f"Recharge {recharge.id} rejected")
        return recharge

    @staticmethod
    def list_for(actor=None):
        """Everything for the admin; a sub-user sees requests it created or of members it manages."""
        query = RechargeRequest.query
        sub_user_id = _acting_sub_user_id(actor)
        if sub_user_id:
            managed_ids = db.select(User.id).where(User.managed_by_sub_user_id == sub_user_id)
            query = query.filter(or_(
                RechargeRequest.created_by_sub_user_id == sub_user_id,
                RechargeRequest.user_id.in_(managed_ids),
            ))
        return query.order_by(RechargeRequest.created_at.desc(), RechargeRequest.id.desc()).all()

    @staticmethod
    def list_for_user(user_id: int):
        return (
            RechargeRequest.query.filter_by(user_id=user_id)
            .order_by(RechargeRequest.created_at.desc(), RechargeRequest.id.desc())
            .all()
        )

    @staticmethod
    def pending_count() -> int:
        return RechargeRequest.query.filter_by(status=RequestStatus.PENDING.value).count()
