from flask import Blueprint, jsonify, request, current_app
import logging

from blueprints.security import KIND_ADMIN, KIND_MEMBER, KIND_SUB_USER, issue_token
from ledger.captcha import CaptchaHelper
from ledger.exceptions import ValidationError
from ledger.members import MemberHelper, authenticate_back_office
from utils import get_json_body, parse_id, require_string, optional_string
from models import isoformat

logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="/auth")


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/register", methods=["POST"])
def register():
    """
    Create a member under the owner of the invite code.
    The member gets its own invite code and a generated display name.
    """
    data = get_json_body()
    account = require_string(data, "account", min_length=4, strip=True,
                             message="Account must be at least 4 characters")
    login_password = require_string(data, "loginPassword", min_length=6,
                                    message="Login password must be at least 6 characters")
    pay_password = require_string(data, "payPassword", min_length=6,
                                  message="Payment password must be at least 6 characters")
    invite_code = require_string(data, "inviteCode", strip=True, message="Invite code is required")

    user = MemberHelper.register(account, login_password, pay_password, invite_code)
    logger.info(f"Registration completed for {user.account}")

    return jsonify({
        "message": "Registration successful",
        "user": {
            "id": user.id,
            "account": user.account,
            "myInviteCode": user.my_invite_code,
            "createdAt": isoformat(user.created_at),
        },
    }), 201


#===========================================================================
#      MEMBER LOGIN / LOGOUT
#==============================================================================
@bp.route("/login", methods=["POST"])
def login():
    data = get_json_body()
    account = require_string(data, "account", message="Account is required")
    password = require_string(data, "password", message="Password is required")
    captcha = optional_string(data, "captcha")
    session_id = optional_string(data, "sessionId")

    # captcha is only enforced when the client sends both parts
    if captcha and session_id:
        if not CaptchaHelper.verify(session_id, captcha):
            raise ValidationError("Captcha is incorrect or expired")

    user = MemberHelper.authenticate(account, password)
    logger.info(f"Member {user.id} logged in")

    return jsonify({
        "message": "Login successful",
        "token": issue_token(KIND_MEMBER, user.id),
        "user": {"id": user.id, "account": user.account},
    })


@bp.route("/logout", methods=["POST"])
def logout():
    data = get_json_body()
    raw = data.get("userId", request.args.get("userId"))
    user_id = parse_id(raw, "user ID")
    MemberHelper.logout(user_id)
    return jsonify({"message": "Logout successful"})


#===========================================================================
#      BACK OFFICE LOGIN (admin account or sub-user)
#==============================================================================
@bp.route("/admin-login", methods=["POST"])
def admin_login():
    data = get_json_body()
    account = require_string(data, "account", message="Account is required")
    password = require_string(data, "password", message="Password is required")

    kind, sub_user = authenticate_back_office(account, password)
    if kind == KIND_ADMIN:
        current_app.logger.info("Admin logged in to the back office")
        return jsonify({
            "message": "Login successful",
            "token": issue_token(KIND_ADMIN, 0),
            "user": {"id": 0, "account": current_app.config["ADMIN_ACCOUNT"], "isSubUser": False},
        })

    current_app.logger.info(f"Sub-user {sub_user.id} logged in to the back office")
    return jsonify({
        "message": "Login successful",
        "token": issue_token(KIND_SUB_USER, sub_user.id),
        "user": {
            "id": sub_user.id,
            "account": sub_user.account,
            "isSubUser": True,
            "parentAdminId": sub_user.parent_admin_id,
            "myInviteCode": sub_user.my_invite_code,
        },
    })
