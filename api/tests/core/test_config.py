"""Settings validation."""
import pytest
from pydantic import ValidationError

from app.core.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.invoice_due_day == 5
        assert s.proof_max_bytes == 5 * 1024 * 1024

    @pytest.mark.parametrize("day", [0, 29, 31])
    def test_due_day_must_exist_in_every_month(self, day):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, invoice_due_day=day)

    def test_limiter_falls_back_to_redis(self):
        s = Settings(_env_file=None, redis_url="redis://cache:6379/1", rate_limit_storage_uri=None)
        assert s.limiter_storage_uri == "redis://cache:6379/1"
