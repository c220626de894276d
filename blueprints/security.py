#======================================================================================
#
# Token identity for the member app and the back office
#
#======================================================================================
import logging

from flask import current_app
from flask_login import UserMixin, current_user
from itsdangerous import BadSignature, URLSafeSerializer

from extensions import db, login_manager
from models import User

logger = logging.getLogger(__name__)

TOKEN_SALT = "task-platform-auth"

KIND_ADMIN = "admin"
KIND_SUB_USER = "sub_user"
KIND_MEMBER = "member"


class CurrentActor(UserMixin):
    """Whoever sent the request. The fixed admin account is id 0 and has no users row."""

    def __init__(self, id, account, is_sub_user=False, parent_admin_id=None, is_admin=False):
        self.id = id
        self.account = account
        self.is_sub_user = is_sub_user
        self.parent_admin_id = parent_admin_id
        self.is_admin = is_admin

    def get_id(self):
        return str(self.id)

    @classmethod
    def for_user(cls, user: User):
        return cls(user.id, user.account, is_sub_user=user.is_sub_user, parent_admin_id=user.parent_admin_id)


def _serializer():
    return URLSafeSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(kind: str, identity: int) -> str:
    return _serializer().dumps({"kind": kind, "id": identity})


def _token_from(req):
    header = req.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    if req.args.get("token"):
        return req.args.get("token")
    body = req.get_json(silent=True)
    if isinstance(body, dict) and isinstance(body.get("token"), str):
        return body["token"]
    return None


@login_manager.request_loader
def load_actor_from_request(req):
    token = _token_from(req)
    if not token:
        return None
    try:
        payload = _serializer().loads(token)
    except BadSignature:
        logger.warning("Rejected request with an invalid token")
        return None

    kind = payload.get("kind")
    if kind == KIND_ADMIN:
        return CurrentActor(0, current_app.config["ADMIN_ACCOUNT"], is_admin=True)

    user = db.session.get(User, payload.get("id"))
    if not user:
        return None
    if kind == KIND_SUB_USER and user.is_sub_user:
        return CurrentActor.for_user(user)
    if kind == KIND_MEMBER and not user.is_sub_user:
        return CurrentActor.for_user(user)
    return None


def current_actor():
    """The authenticated CurrentActor, or None for anonymous requests."""
    if current_user and current_user.is_authenticated:
        return current_user._get_current_object()
    return None
