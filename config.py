import os


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///expense_workflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    EXCHANGE_API_URL = os.environ.get("EXCHANGE_API_URL", "https://api.exchangerate-api.com/v4/latest/{base}")
    EXCHANGE_API_TIMEOUT = int(os.environ.get("EXCHANGE_API_TIMEOUT", 10))
    # Use a rate of 1 when the lookup fails instead of refusing the expense.
    EXCHANGE_RATE_FALLBACK_ENABLED = _env_flag("EXCHANGE_RATE_FALLBACK_ENABLED", "true")
    REST_COUNTRIES_URL = os.environ.get(
        "REST_COUNTRIES_URL", "https://restcountries.com/v3.1/all?fields=name,currencies"
    )
    REJECTION_COMMENT_MIN_LENGTH = int(os.environ.get("REJECTION_COMMENT_MIN_LENGTH", 5))
    EXPENSES_PER_PAGE = int(os.environ.get("EXPENSES_PER_PAGE", 10))


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    EXCHANGE_RATE_FALLBACK_ENABLED = _env_flag("EXCHANGE_RATE_FALLBACK_ENABLED", "false")


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
