from flask import Blueprint, jsonify, request

from ledger.captcha import CaptchaHelper

bp = Blueprint("captcha", __name__, url_prefix="/captcha")


@bp.route("/captcha", methods=["GET"])
def issue_captcha():
    session_id, code = CaptchaHelper.generate(request.headers.get("X-Session-Id"))
    return jsonify({"sessionId": session_id, "code": code})
