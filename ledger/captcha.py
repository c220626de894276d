import secrets
from datetime import datetime, timedelta, timezone
from typing import Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from ledger.exceptions import ValidationError
from models import Captcha, utcnow

CAPTCHA_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CAPTCHA_LENGTH = 4
SESSION_ID_MAX_LENGTH = 64


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CaptchaHelper:
    """Single-use login captchas keyed by a client session id."""

    @staticmethod
    def generate_code() -> str:
        return ''.join(secrets.choice(CAPTCHA_ALPHABET) for _ in range(CAPTCHA_LENGTH))

    @staticmethod
    def sweep_expired(now: datetime = None):
        """Best-effort cleanup; a failure here never blocks generate/verify."""
        now = now or utcnow()
        try:
            Captcha.query.filter(Captcha.expires_at < now).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.warning(f"Captcha sweep failed: {e}")

    @staticmethod
    def generate(session_id: str = None, now: datetime = None) -> Tuple[str, str]:
        """Issue a fresh code for the session, replacing any earlier one. Returns (session_id, code)."""
        if session_id and len(session_id) > SESSION_ID_MAX_LENGTH:
            raise ValidationError(f"Session id must be at most {SESSION_ID_MAX_LENGTH} characters")
        now = now or utcnow()
        CaptchaHelper.sweep_expired(now)

        session_id = session_id or secrets.token_hex(16)
        code = CaptchaHelper.generate_code()
        ttl = current_app.config.get("CAPTCHA_TTL_SECONDS", 300)

        try:
            Captcha.query.filter_by(session_id=session_id).delete(synchronize_session=False)
            db.session.add(Captcha(session_id=session_id, code=code, expires_at=now + timedelta(seconds=ttl)))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return session_id, code

    @staticmethod
    def verify(session_id: str, code: str, now: datetime = None) -> bool:
        """
        Case-insensitive match. The stored code is consumed whatever the outcome,
        so a second verify of the same session always fails.
        """
        now = now or utcnow()
        CaptchaHelper.sweep_expired(now)

        if not session_id or code is None:
            return False
        captcha = Captcha.query.filter_by(session_id=session_id).first()
        if not captcha:
            return False

        is_valid = (
            _as_utc(captcha.expires_at) >= now
            and captcha.code.lower() == str(code).lower()
        )
        try:
            db.session.delete(captcha)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return is_valid
