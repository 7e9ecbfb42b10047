import pytest

from api import create_app
from models.user import User
from api.config import (
    ConfigError,
    DEV_JWT_SECRET,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_config,
)

STRONG = {
    "SECRET_KEY": "s" * 32,
    "JWT_SECRET": "j" * 32,
    "REFRESH_TOKEN_SECRET": "r" * 32,
}


def test_get_config_by_name():
    assert get_config("prod") is ProductionConfig
    assert get_config("production") is ProductionConfig
    assert get_config("test") is TestingConfig
    assert get_config("dev") is DevelopmentConfig


def test_dev_defaults_are_tolerated_outside_production():
    validate_config({"APP_ENV": "dev", "SECRET_KEY": "dev-secret-key-change-in-production",
                     "JWT_SECRET": DEV_JWT_SECRET, "REFRESH_TOKEN_SECRET": "dev-refresh-secret-change-in-prod"})


def test_short_secret_always_rejected():
    with pytest.raises(ConfigError, match="JWT_SECRET"):
        validate_config(dict(STRONG, APP_ENV="dev", JWT_SECRET="short"))


def test_production_rejects_known_defaults():
    config = dict(STRONG, APP_ENV="prod", COOKIE_SECURE=True, JWT_SECRET=DEV_JWT_SECRET)
    with pytest.raises(ConfigError, match="development default"):
        validate_config(config)


def test_production_requires_secure_cookies():
    with pytest.raises(ConfigError, match="COOKIE_SECURE"):
        validate_config(dict(STRONG, APP_ENV="prod", COOKIE_SECURE=False))


def test_production_with_real_secrets_passes():
    validate_config(dict(STRONG, APP_ENV="prod", COOKIE_SECURE=True))


def test_create_app_refuses_weak_production_config(tmp_path):
    with pytest.raises(ConfigError):
        create_app("prod", config_overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'prod.db'}",
            "JWT_SECRET": DEV_JWT_SECRET,
            "SECRET_KEY": "s" * 32,
            "REFRESH_TOKEN_SECRET": "r" * 32,
        })


def test_create_app_seeds_admin_once(tmp_path):
    overrides = {"DATABASE_URL": f"sqlite:///{tmp_path / 'seed.db'}"}
    for _ in range(2):
        app = create_app("test", config_overrides=overrides)
        with app.app_context():
            services = app.extensions["portal"]
            assert services.storage.count(User) == 1
        services.storage.dispose()
