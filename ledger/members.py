import secrets
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from ledger.codes import generate_unique_invite_code, generate_unique_random_name
from ledger.exceptions import (
    DuplicateError,
    InsufficientBalanceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ledger.injection import InjectionPlanHelper
from ledger.money import as_number, to_money
from ledger.orders import OrderLedgerHelper
from ledger.rates import CommissionRateHelper
from ledger.transaction import atomic
from logger import ledger_logger
from models import (
    InjectionPlan,
    OrderRecord,
    OrderSetting,
    RechargeRequest,
    SupportConversation,
    SupportMessage,
    User,
    WithdrawRequest,
    utcnow,
)


def _invite_code_taken(code: str) -> bool:
    return User.query.filter_by(my_invite_code=code).first() is not None


def _name_taken(name: str) -> bool:
    return User.query.filter_by(name=name).first() is not None


def _new_invite_code(max_attempts: int) -> str:
    return generate_unique_invite_code(
        _invite_code_taken,
        max_attempts=max_attempts,
        length=current_app.config.get("INVITE_CODE_LENGTH", 6),
    )


def _account_taken(account: str) -> bool:
    return User.query.filter_by(account=account).first() is not None


# ==========================================================
#                  MEMBERS
# ==========================================================
class MemberHelper:

    @staticmethod
    def get_user(user_id: int) -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def register(account: str, login_password: str, pay_password: str, invite_code: str) -> User:
        """
        Sign up under the owner of `invite_code`. Members invited by a sub-user
        are managed by that sub-user from the start.
        """
        if _account_taken(account):
            raise DuplicateError("Account already exists")

        parent = User.query.filter_by(my_invite_code=invite_code).first()
        if not parent:
            raise ValidationError("Invite code is incorrect or does not exist")

        my_invite_code = _new_invite_code(current_app.config.get("INVITE_CODE_ATTEMPTS", 10))
        name = generate_unique_random_name(_name_taken, current_app.config.get("NAME_ATTEMPTS", 20))

        user = User(
            account=account,
            name=name,
            invite_code=invite_code,
            my_invite_code=my_invite_code,
            parent_id=parent.id,
        )
        user.set_login_password(login_password)
        user.set_pay_password(pay_password)
        if parent.is_sub_user:
            user.managed_by_sub_user_id = parent.id

        try:
            with atomic():
                db.session.add(user)
        except IntegrityError:
            raise DuplicateError("Account already exists")

        current_app.logger.info(f"Member registered: {user.account} (id={user.id}, parent={parent.id})")
        return user

    @staticmethod
    def authenticate(account: str, password: str) -> User:
        user = User.query.filter_by(account=account).first()
        if not user or not user.check_login_password(password):
            raise ValidationError("Invalid account or password")
        MemberHelper.mark_online(user)
        return user

    @staticmethod
    def mark_online(user: User):
        with atomic():
            user.is_online = True
            user.last_login_at = utcnow()

    @staticmethod
    def logout(user_id: int):
        user = MemberHelper.get_user(user_id)
        with atomic():
            user.is_online = False

    @staticmethod
    def ensure_admin_user() -> User:
        """The admin root row: the first inviter in the referral tree and parent of sub-users."""
        account = current_app.config["ADMIN_ACCOUNT"]
        admin = User.query.filter_by(account=account).first()
        if admin:
            if not admin.my_invite_code:
                with atomic():
                    admin.my_invite_code = _new_invite_code(current_app.config.get("INVITE_CODE_ATTEMPTS", 10))
            return admin

        admin = User(
            account=account,
            name='Admin',
            invite_code='ADMIN',
            my_invite_code=_new_invite_code(current_app.config.get("INVITE_CODE_ATTEMPTS", 10)),
        )
        admin.set_login_password(current_app.config["ADMIN_PASSWORD"])
        admin.set_pay_password(current_app.config["ADMIN_PASSWORD"])
        try:
            with atomic():
                db.session.add(admin)
        except IntegrityError:
            # created concurrently
            admin = User.query.filter_by(account=account).first()
            if not admin:
                raise
        else:
            current_app.logger.info(f"Admin root user created (id={admin.id}, code={admin.my_invite_code})")
        return admin

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------
    @staticmethod
    def overview(user_id: int) -> dict:
        user = MemberHelper.get_user(user_id)
        total = OrderLedgerHelper.total_commission(user.id)
        return {
            "user": {
                "id": user.id,
                "account": user.account,
                "balance": as_number(user.balance),
                "myInviteCode": user.my_invite_code,
                "walletAddress": user.wallet_address,
            },
            # both figures are the all-time aggregate
            "todayCommission": as_number(total),
            "totalCommission": as_number(total),
        }

    @staticmethod
    def adjust_balance(user_id: int, delta) -> User:
        """Apply a signed delta; the result may not go below zero."""
        delta = to_money(delta)
        user = MemberHelper.get_user(user_id)
        if to_money(user.balance) + delta < 0:
            raise InsufficientBalanceError("Insufficient balance")

        with atomic():
            updated = (
                User.query.filter(User.id == user.id, User.balance + delta >= 0)
                .update({User.balance: User.balance + delta}, synchronize_session=False)
            )
            if not updated:
                raise InsufficientBalanceError("Insufficient balance")

        db.session.refresh(user)
        ledger_logger.info(f"Balance of user {user.id} adjusted by {delta}: now {user.balance}")
        return user

    @staticmethod
    def update_wallet(user_id: int, wallet_address: str) -> User:
        user = MemberHelper.get_user(user_id)
        with atomic():
            user.wallet_address = wallet_address
        return user

    @staticmethod
    def change_login_password(user_id: int, old_password: str, new_password: str):
        user = MemberHelper.get_user(user_id)
        if not user.check_login_password(old_password):
            raise ValidationError("Invalid old password")
        with atomic():
            user.set_login_password(new_password)

    @staticmethod
    def change_pay_password(user_id: int, old_password: str, new_password: str):
        user = MemberHelper.get_user(user_id)
        if not user.check_pay_password(old_password):
            raise ValidationError("Invalid old password")
        with atomic():
            user.set_pay_password(new_password)

    # ------------------------------------------------------------------
    # Back-office management
    # ------------------------------------------------------------------
    @staticmethod
    def member_row(user: User, global_rate) -> dict:
        progress = OrderLedgerHelper.progress(user.id, global_rate=global_rate)
        total_recharged = InjectionPlanHelper.total_approved_recharges(user.id)
        difference = InjectionPlanHelper.shortfall(
            user.id,
            current_order_number=progress["currentOrderNumber"],
            total_recharged=total_recharged,
        )

        setting = user.current_order_setting
        row = user.to_dict()
        row.update({
            "parent": user.parent.summary() if user.parent else None,
            "orderSetting": {
                "maxOrders": setting.max_orders,
                "commissionRate": as_number(setting.commission_rate),
                "createdAt": setting.to_dict()["createdAt"],
            } if setting else None,
            "orderStats": {
                "total": progress["total"],
                "cumulative": progress["cumulative"],
                "completed": progress["completed"],
                "pending": progress["pending"],
                "totalCommission": as_number(progress["totalCommission"]),
            },
            "totalRecharged": as_number(total_recharged),
            "difference": as_number(difference),
        })
        return row

    @staticmethod
    def list_members(actor=None) -> list:
        """
        Business members (no sub-users, no admin root row) with stats.
        Online first by latest login, then newest first.
        """
        query = User.query.filter(
            User.account != current_app.config["ADMIN_ACCOUNT"],
            User.is_sub_user.is_(False),
        )
        if actor is not None and getattr(actor, "is_sub_user", False):
            query = query.filter(User.managed_by_sub_user_id == actor.id)

        users = query.order_by(User.created_at.desc(), User.id.desc()).all()
        # stable sort keeps newest-first inside each group
        users.sort(key=lambda u: (bool(u.is_online),
                                  u.is_online and u.last_login_at is not None,
                                  u.last_login_at if u.is_online else None),
                   reverse=True)

        global_rate = CommissionRateHelper.global_rate()
        return [MemberHelper.member_row(user, global_rate) for user in users]

    @staticmethod
    def team(user_id: int) -> dict:
        user = MemberHelper.get_user(user_id)
        children = User.query.filter_by(parent_id=user.id).order_by(User.id.asc()).all()
        me = user.summary()
        me["parentId"] = user.parent_id
        return {
            "user": me,
            "parent": user.parent.summary() if user.parent else None,
            "children": [child.summary() for child in children],
        }

    @staticmethod
    def reset_passwords(user_id: int, login_password: str = None, pay_password: str = None) -> User:
        if not login_password and not pay_password:
            raise ValidationError("No password provided")
        user = MemberHelper.get_user(user_id)
        with atomic():
            if login_password:
                user.set_login_password(login_password)
            if pay_password:
                user.set_pay_password(pay_password)
        return user

    @staticmethod
    def set_remark(user_id: int, remark: Optional[str]) -> User:
        user = MemberHelper.get_user(user_id)
        with atomic():
            user.remark = remark or None
        return user

    @staticmethod
    def assign_sub_user(user_id: int, sub_user_id: Optional[int], actor=None) -> User:
        """Hand a member to a sub-user; 0 or None unassigns. Sub-users may not do this."""
        if actor is not None and getattr(actor, "is_sub_user", False):
            raise PermissionDeniedError("Only admin can assign members")

        if sub_user_id and sub_user_id > 0:
            sub_user = db.session.get(User, sub_user_id)
            if not sub_user or not sub_user.is_sub_user:
                raise NotFoundError("Sub user not found")
        else:
            sub_user_id = None

        user = MemberHelper.get_user(user_id)
        with atomic():
            user.managed_by_sub_user_id = sub_user_id
        return user

    @staticmethod
    def delete_member(user_id: int):
        """
        Remove a member and everything it owns in one transaction. Invitees are
        detached (parent cleared) and every reference to the user is nulled first,
        so the outcome does not depend on database-level cascades.
        """
        user = MemberHelper.get_user(user_id)
        user_id = user.id

        with atomic():
            User.query.filter(User.id == user_id).update(
                {User.current_order_setting_id: None}, synchronize_session=False
            )
            OrderRecord.query.filter_by(user_id=user_id).delete(synchronize_session=False)
            OrderSetting.query.filter_by(user_id=user_id).delete(synchronize_session=False)
            RechargeRequest.query.filter_by(user_id=user_id).delete(synchronize_session=False)
            WithdrawRequest.query.filter_by(user_id=user_id).delete(synchronize_session=False)
            InjectionPlan.query.filter_by(user_id=user_id).delete(synchronize_session=False)

            conversation_ids = db.select(SupportConversation.id).where(SupportConversation.user_id == user_id)
            SupportMessage.query.filter(SupportMessage.conversation_id.in_(conversation_ids)) \
                .delete(synchronize_session=False)
            SupportConversation.query.filter_by(user_id=user_id).delete(synchronize_session=False)

            _detach_references(user_id)
            User.query.filter(User.id == user_id).delete(synchronize_session=False)

        db.session.expire_all()
        current_app.logger.info(f"User {user_id} deleted with all related records")


def _detach_references(user_id: int):
    """Null every column that points at `user_id` from rows that survive its deletion."""
    User.query.filter(User.parent_id == user_id).update({User.parent_id: None}, synchronize_session=False)
    User.query.filter(User.managed_by_sub_user_id == user_id).update(
        {User.managed_by_sub_user_id: None}, synchronize_session=False
    )
    User.query.filter(User.parent_admin_id == user_id).update(
        {User.parent_admin_id: None}, synchronize_session=False
    )
    RechargeRequest.query.filter(RechargeRequest.created_by_sub_user_id == user_id).update(
        {RechargeRequest.created_by_sub_user_id: None}, synchronize_session=False
    )
    WithdrawRequest.query.filter(WithdrawRequest.processed_by_sub_user_id == user_id).update(
        {WithdrawRequest.processed_by_sub_user_id: None}, synchronize_session=False
    )
    SupportConversation.query.filter(SupportConversation.service_id == user_id).update(
        {SupportConversation.service_id: None}, synchronize_session=False
    )


# ==========================================================
#                  SUB-USERS
# ==========================================================
class SubUserHelper:

    @staticmethod
    def to_dict(sub_user: User, parent_admin: dict = None) -> dict:
        data = {
            "id": sub_user.id,
            "account": sub_user.account,
            "myInviteCode": sub_user.my_invite_code,
            "parentAdminId": sub_user.parent_admin_id,
            "createdAt": sub_user.to_dict()["createdAt"],
            "updatedAt": sub_user.to_dict()["updatedAt"],
            "lastLoginAt": sub_user.to_dict()["lastLoginAt"],
            "isOnline": sub_user.is_online,
        }
        if parent_admin is not None:
            data["parentAdmin"] = parent_admin
        return data

    @staticmethod
    def get_sub_user(sub_user_id: int) -> User:
        sub_user = db.session.get(User, sub_user_id)
        if not sub_user or not sub_user.is_sub_user:
            raise NotFoundError("Sub user not found")
        return sub_user

    @staticmethod
    def list_sub_users() -> list:
        sub_users = User.query.filter_by(is_sub_user=True).order_by(User.created_at.desc(), User.id.desc()).all()
        account = current_app.config["ADMIN_ACCOUNT"]
        admin = User.query.filter_by(account=account).first()
        parent_admin = {"id": admin.id, "account": admin.account} if admin else {"id": 0, "account": account}
        return [SubUserHelper.to_dict(s, parent_admin) for s in sub_users]

    @staticmethod
    def create_sub_user(account: str, login_password: str, pay_password: str) -> User:
        if _account_taken(account):
            raise DuplicateError("Account already exists")

        admin = MemberHelper.ensure_admin_user()
        sub_user = User(
            account=account,
            name=account,
            invite_code='',
            my_invite_code=_new_invite_code(current_app.config.get("SUB_USER_INVITE_CODE_ATTEMPTS", 100)),
            is_sub_user=True,
            parent_admin_id=admin.id,
        )
        sub_user.set_login_password(login_password)
        sub_user.set_pay_password(pay_password)

        try:
            with atomic():
                db.session.add(sub_user)
        except IntegrityError:
            raise DuplicateError("Account already exists")

        current_app.logger.info(f"Sub-user created: {sub_user.account} (id={sub_user.id})")
        return sub_user

    @staticmethod
    def update_sub_user(sub_user_id: int, account: str = None, login_password: str = None,
                        pay_password: str = None) -> User:
        sub_user = SubUserHelper.get_sub_user(sub_user_id)
        if account and account != sub_user.account and _account_taken(account):
            raise DuplicateError("Account already exists")

        try:
            with atomic():
                if account:
                    sub_user.account = account
                if login_password:
                    sub_user.set_login_password(login_password)
                if pay_password:
                    sub_user.set_pay_password(pay_password)
        except IntegrityError:
            raise DuplicateError("Account already exists")
        return sub_user

    @staticmethod
    def delete_sub_user(sub_user_id: int):
        sub_user = SubUserHelper.get_sub_user(sub_user_id)
        with atomic():
            _detach_references(sub_user.id)
            User.query.filter(User.id == sub_user.id).delete(synchronize_session=False)
        db.session.expire_all()
        current_app.logger.info(f"Sub-user {sub_user_id} deleted")

    @staticmethod
    def backfill_invite_codes() -> Tuple[int, list]:
        """Give every sub-user without an invite code one. Per-item outcome, one failure does not stop the rest."""
        missing = User.query.filter(
            User.is_sub_user.is_(True),
            or_(User.my_invite_code.is_(None), User.my_invite_code == ''),
        ).all()
        attempts = current_app.config.get("SUB_USER_INVITE_CODE_ATTEMPTS", 100)

        results = []
        for sub_user in missing:
            try:
                code = _new_invite_code(attempts)
                with atomic():
                    sub_user.my_invite_code = code
                results.append({"id": sub_user.id, "account": sub_user.account,
                                "myInviteCode": code, "status": "success"})
            except Exception as e:
                current_app.logger.error(f"Invite code generation failed for sub-user {sub_user.id}: {e}")
                results.append({"id": sub_user.id, "account": sub_user.account,
                                "status": "failed", "error": str(e)})

        succeeded = sum(1 for r in results if r["status"] == "success")
        return succeeded, results


def authenticate_back_office(account: str, password: str) -> Tuple[str, Optional[User]]:
    """Fixed admin credentials first (identity id 0), then a sub-user's own login."""
    config = current_app.config
    if secrets.compare_digest(account.encode(), config["ADMIN_ACCOUNT"].encode()) and \
            secrets.compare_digest(password.encode(), config["ADMIN_PASSWORD"].encode()):
        return 'admin', None

    sub_user = User.query.filter_by(account=account).first()
    if sub_user and sub_user.is_sub_user and sub_user.check_login_password(password):
        MemberHelper.mark_online(sub_user)
        return 'sub_user', sub_user
    raise ValidationError("Invalid account or password")
