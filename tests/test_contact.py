"""Tests for buyer contact normalization."""

import pytest

from pickup_checkout.errors import ValidationError
from pickup_checkout.services.contact import normalize_email, normalize_phone


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw",
        ["+1 212-736-5000", "(212) 736-5000", "212.736.5000", "+12127365000"],
    )
    def test_us_formats_to_e164(self, raw):
        assert normalize_phone(raw) == "+12127365000"

    def test_explicit_region(self):
        assert normalize_phone("020 7219 3000", region="GB") == "+442072193000"

    @pytest.mark.parametrize("raw", ["", "   ", "12", "not a phone"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValidationError):
            normalize_phone(raw)


class TestNormalizeEmail:
    def test_strips_and_normalizes_domain(self):
        assert normalize_email("  Ann@Mailbox.ORG ") == "Ann@mailbox.org"

    @pytest.mark.parametrize("raw", ["", "ann", "ann@", "@mailbox.org", "ann@@mailbox.org"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValidationError):
            normalize_email(raw)
