# ==========================================================================================================
# -------------- Configuration file for the task platform Flask application --------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY must be set")

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")
    TESTING = False

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'taskhub.db')}"

    if _database_url.startswith("postgres://"):
        _database_url = _database_url.replace("postgres://", "postgresql+pg8000://", 1)

    SQLALCHEMY_DATABASE_URI = _database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    if not _database_url.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_recycle": 300,
        })

    # Back-office fixed account (identity id 0, not a users row)
    ADMIN_ACCOUNT = os.getenv("ADMIN_ACCOUNT", "admin")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "change-me")

    LOG_DIR = os.getenv("LOG_DIR", "logs")

    CAPTCHA_TTL_SECONDS = int(os.getenv("CAPTCHA_TTL_SECONDS", 300))
    MIN_WITHDRAW_AMOUNT = Decimal(os.getenv("MIN_WITHDRAW_AMOUNT", "10"))

    INVITE_CODE_LENGTH = int(os.getenv("INVITE_CODE_LENGTH", 6))
    INVITE_CODE_ATTEMPTS = int(os.getenv("INVITE_CODE_ATTEMPTS", 10))
    SUB_USER_INVITE_CODE_ATTEMPTS = int(os.getenv("SUB_USER_INVITE_CODE_ATTEMPTS", 100))
    NAME_ATTEMPTS = int(os.getenv("NAME_ATTEMPTS", 20))

    # Shown by GET /commission-rate/active when no rate row is active.
    # Balance math uses 0 in that case.
    DEFAULT_DISPLAY_RATE = Decimal(os.getenv("DEFAULT_DISPLAY_RATE", "0.1"))


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    ADMIN_ACCOUNT = "admin"
    ADMIN_PASSWORD = "admin-pass"
