import pytest

from app.core import config

SECRET = "x" * 40

REQUIRED = {
    "MONGO_URL": "mongodb://localhost",
    "JWT_SECRET": SECRET,
    "ADMIN_JWT_SECRET": SECRET,
    "ADMIN_USERNAME": "admin",
    "ADMIN_PASSWORD": "pw",
}


class TestValidateEnv:
    def test_missing_required_is_fatal(self):
        with pytest.raises(RuntimeError) as exc:
            config.validate_env({**REQUIRED, "MONGO_URL": None, "JWT_SECRET": ""}, {})
        assert "MONGO_URL" in str(exc.value)
        assert "JWT_SECRET" in str(exc.value)

    def test_clean_environment(self):
        assert config.validate_env(REQUIRED, {"EMAIL_USER": "a@b.c"}) == []

    def test_missing_recommended_warns(self):
        warnings = config.validate_env(REQUIRED, {"GEMINI_API_KEY": None})
        assert warnings == ["GEMINI_API_KEY is not set, related features are disabled"]

    def test_short_secret_warns(self):
        warnings = config.validate_env({**REQUIRED, "JWT_SECRET": "short"}, {})
        assert warnings == ["JWT_SECRET is shorter than 32 characters"]
