from caelex.config import Settings


def test_defaults_cover_domain_tunables():
    settings = Settings(_env_file=None)

    assert settings.deadline_due_soon_days == 7
    assert settings.supplier_token_ttl_days == 30
    assert settings.invitation_ttl_days == 7
    assert settings.jwt_algorithm == "HS256"


def test_cors_origins_drop_trailing_slash():
    settings = Settings(_env_file=None, cors_origins=["https://app.caelex.example/", "http://localhost:3000"])

    assert settings.cors_allow_origins == ["https://app.caelex.example", "http://localhost:3000"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SUPPLIER_TOKEN_TTL_DAYS", "14")
    monkeypatch.setenv("APP_ENV", "production")

    settings = Settings(_env_file=None)

    assert settings.supplier_token_ttl_days == 14
    assert settings.app_env == "production"
