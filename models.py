# models.py - Flask-SQLAlchemy models for the task platform
from datetime import datetime, timezone
from decimal import Decimal
import enum
from sqlalchemy import Index, text
from extensions import db
from werkzeug.security import check_password_hash, generate_password_hash
from ledger.money import as_number

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class OrderStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class RequestStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConversationStatus(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class SenderType(enum.Enum):
    USER = "user"
    SERVICE = "service"


def utcnow():
    return datetime.now(timezone.utc)


def isoformat(value):
    return value.isoformat() if value else None

# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow,
                           onupdate=utcnow,
                           nullable=False)

# ===========================================================
# USER MODELS
# ===========================================================

class User(db.Model, BaseMixin):
    """Member, sub-user or the admin root row. Balance is never negative."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    account = db.Column(db.String(80), unique=True, nullable=False)
    name = db.Column(db.String(80), nullable=True, index=True)
    email = db.Column(db.String(120), nullable=True)
    login_password_hash = db.Column(db.String(255), nullable=False)
    pay_password_hash = db.Column(db.String(255), nullable=False)
    balance = db.Column(db.Numeric(18, 2), nullable=False, default=0, server_default=text("0"))

    invite_code = db.Column(db.String(20), nullable=True)  # parent's code used at signup
    my_invite_code = db.Column(db.String(20), unique=True, nullable=True)  # user's own code
    parent_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    wallet_address = db.Column(db.String(255), nullable=True)
    remark = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_online = db.Column(db.Boolean, default=False, nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_sub_user = db.Column(db.Boolean, default=False, nullable=False, index=True)
    parent_admin_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    managed_by_sub_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'),
                                       nullable=True, index=True)

    # Pointer to the active order batch, moved transactionally with OrderSetting writes
    current_order_setting_id = db.Column(
        db.Integer,
        db.ForeignKey('order_settings.id', ondelete='SET NULL', use_alter=True,
                      name='fk_users_current_order_setting'),
        nullable=True,
    )

    parent = db.relationship('User', remote_side=[id], foreign_keys=[parent_id])
    current_order_setting = db.relationship(
        'OrderSetting',
        foreign_keys=[current_order_setting_id],
        post_update=True,
    )

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='chk_user_balance_non_negative'),
        Index('idx_user_my_invite_code', 'my_invite_code'),
    )

    def set_login_password(self, password: str):
        self.login_password_hash = generate_password_hash(password)

    def check_login_password(self, password: str) -> bool:
        return check_password_hash(self.login_password_hash, password)

    def set_pay_password(self, password: str):
        self.pay_password_hash = generate_password_hash(password)

    def check_pay_password(self, password: str) -> bool:
        return check_password_hash(self.pay_password_hash, password)

    def summary(self):
        return {
            "id": self.id,
            "account": self.account,
            "name": self.name,
            "myInviteCode": self.my_invite_code,
        }

    def to_dict(self):
        """Serialize user for JSON responses. Password hashes are never included."""
        return {
            "id": self.id,
            "account": self.account,
            "email": self.email,
            "name": self.name,
            "balance": as_number(self.balance),
            "inviteCode": self.invite_code,
            "myInviteCode": self.my_invite_code,
            "parentId": self.parent_id,
            "walletAddress": self.wallet_address,
            "remark": self.remark,
            "isOnline": self.is_online,
            "lastLoginAt": isoformat(self.last_login_at),
            "managedBySubUserId": self.managed_by_sub_user_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<User {self.id} {self.account}>'

# ===========================================================
# ORDER BATCHES & TASK RECORDS
# ===========================================================

class OrderSetting(db.Model, BaseMixin):
    """One order batch: how many tasks are opened and the personal rate on top of the global one."""
    __tablename__ = 'order_settings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    max_orders = db.Column(db.Integer, nullable=False, default=0)
    commission_rate = db.Column(db.Numeric(10, 4), nullable=False, default=0)
    order_type = db.Column(db.String(50), nullable=False, default='pre-order')
    amount = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "maxOrders": self.max_orders,
            "commissionRate": as_number(self.commission_rate),
            "orderType": self.order_type,
            "amount": as_number(self.amount),
            "description": self.description,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class OrderRecord(db.Model, BaseMixin):
    """One task attempt. Append-only."""
    __tablename__ = 'order_records'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    order_type = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING.value)
    description = db.Column(db.Text, nullable=True)
    # Fixed commission counted by the all-time aggregate instead of amount * rate
    commission_override = db.Column(db.Numeric(18, 2), nullable=True)

    __table_args__ = (
        Index('idx_order_record_user_status_created', 'user_id', 'status', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "orderType": self.order_type,
            "amount": as_number(self.amount),
            "status": self.status,
            "description": self.description,
            "commissionOverride": as_number(self.commission_override),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class InjectionPlan(db.Model, BaseMixin):
    """Balance top-up required before a given task ordinal (or any task when order_number is null)."""
    __tablename__ = 'injection_plans'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    # Task ordinal inside the active batch; exposed on the wire as orderSettingId
    order_number = db.Column(db.Integer, nullable=True)
    commission_rate = db.Column(db.Numeric(10, 4), nullable=False, default=0)
    injection_amount = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "orderSettingId": self.order_number,
            "commissionRate": as_number(self.commission_rate),
            "injectionAmount": as_number(self.injection_amount),
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class CommissionRate(db.Model, BaseMixin):
    """Global rate table. At most one row is active."""
    __tablename__ = 'commission_rates'

    id = db.Column(db.Integer, primary_key=True)
    rate = db.Column(db.Numeric(10, 4), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "rate": as_number(self.rate),
            "isActive": self.is_active,
            "description": self.description,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

# ===========================================================
# RECHARGES & WITHDRAWALS
# ===========================================================

class RechargeRequest(db.Model, BaseMixin):
    __tablename__ = 'recharge_requests'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    note = db.Column(db.String(255), nullable=True)
    voucher_image = db.Column(db.Text, nullable=True)
    created_by_sub_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'),
                                       nullable=True, index=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self, include_user=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "amount": as_number(self.amount),
            "status": self.status,
            "note": self.note,
            "voucherImage": self.voucher_image,
            "createdBySubUserId": self.created_by_sub_user_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if include_user:
            data["user"] = dict(self.user.summary(), inviteCode=self.user.invite_code) if self.user else None
        return data


class WithdrawRequest(db.Model, BaseMixin):
    __tablename__ = 'withdraw_requests'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    note = db.Column(db.String(255), nullable=True)
    wallet_address = db.Column(db.String(255), nullable=True)
    processed_by_sub_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'),
                                         nullable=True, index=True)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self, include_user=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "amount": as_number(self.amount),
            "status": self.status,
            "note": self.note,
            "walletAddress": self.wallet_address,
            "processedBySubUserId": self.processed_by_sub_user_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if include_user:
            data["user"] = dict(
                self.user.summary(),
                inviteCode=self.user.invite_code,
                walletAddress=self.user.wallet_address,
            ) if self.user else None
        return data

# ===========================================================
# CATALOG & STATIC CONFIGURATION
# ===========================================================

class Product(db.Model, BaseMixin):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image = db.Column(db.Text, nullable=True)  # opaque string, uploads are handled elsewhere
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class ProductPriceConfig(db.Model, BaseMixin):
    __tablename__ = 'product_price_config'

    id = db.Column(db.Integer, primary_key=True)
    min_rate = db.Column(db.Numeric(10, 4), nullable=False, default=Decimal("0.29"))
    max_rate = db.Column(db.Numeric(10, 4), nullable=False, default=Decimal("0.60"))

    def to_dict(self):
        return {
            "id": self.id,
            "minRate": as_number(self.min_rate),
            "maxRate": as_number(self.max_rate),
            "updatedAt": isoformat(self.updated_at),
        }


class RechargeConfig(db.Model, BaseMixin):
    __tablename__ = 'recharge_config'

    id = db.Column(db.Integer, primary_key=True)
    trc20_address = db.Column(db.String(255), nullable=True)
    trx_address = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "trc20Address": self.trc20_address,
            "trxAddress": self.trx_address,
            "updatedAt": isoformat(self.updated_at),
        }

# ===========================================================
# SUPPORT & CAPTCHA
# ===========================================================

class SupportConversation(db.Model, BaseMixin):
    __tablename__ = 'support_conversations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ConversationStatus.OPEN.value)

    user = db.relationship('User', foreign_keys=[user_id])
    service = db.relationship('User', foreign_keys=[service_id])
    messages = db.relationship('SupportMessage', back_populates='conversation',
                               cascade="all,delete-orphan", order_by='SupportMessage.created_at')

    def to_dict(self, include_people=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "serviceId": self.service_id,
            "status": self.status,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if include_people:
            data["user"] = self.user.summary() if self.user else None
            data["service"] = self.service.summary() if self.service else None
        return data


class SupportMessage(db.Model, BaseMixin):
    __tablename__ = 'support_messages'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('support_conversations.id', ondelete='CASCADE'),
                                nullable=False, index=True)
    sender_type = db.Column(db.String(20), nullable=False)
    sender_id = db.Column(db.Integer, nullable=False)  # 0 is the system service agent
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    conversation = db.relationship('SupportConversation', back_populates='messages')

    __table_args__ = (
        Index('idx_support_message_unread', 'conversation_id', 'sender_type', 'is_read'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "senderType": self.sender_type,
            "senderId": self.sender_id,
            "content": self.content,
            "isRead": self.is_read,
            "createdAt": isoformat(self.created_at),
        }


class Captcha(db.Model, BaseMixin):
    __tablename__ = 'captchas'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(64), unique=True, nullable=False)
    code = db.Column(db.String(8), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
