"""
Tests for input validation utilities.

Tests: slugify, validate_slug, validate_pincode, validate_phone,
validate_hex_color, normalize_coupon_code, validate_email.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from fastapi import HTTPException
from utils.validators import (
    normalize_coupon_code,
    slugify,
    validate_email,
    validate_hex_color,
    validate_phone,
    validate_pincode,
    validate_slug,
)


class TestSlugs:

    @pytest.mark.unit
    def test_slugify_free_text(self):
        assert slugify("  Trail Runner — Olive / Black ") == "trail-runner-olive-black"

    @pytest.mark.unit
    def test_valid_slug_is_lowercased(self):
        assert validate_slug("Classic-Loafer-2") == "classic-loafer-2"

    @pytest.mark.unit
    @pytest.mark.parametrize("slug", ["", "double--hyphen", "-leading", "has space", "under_score"])
    def test_invalid_slug_raises_400(self, slug):
        with pytest.raises(HTTPException) as exc_info:
            validate_slug(slug)
        assert exc_info.value.status_code == 400
        assert "slug" in exc_info.value.detail


class TestIndianFormats:

    @pytest.mark.unit
    def test_pincode(self):
        assert validate_pincode(" 560001 ") == "560001"

    @pytest.mark.unit
    @pytest.mark.parametrize("pincode", ["056001", "56001", "5600011", "56OO01"])
    def test_bad_pincode(self, pincode):
        with pytest.raises(HTTPException):
            validate_pincode(pincode)

    @pytest.mark.unit
    @pytest.mark.parametrize("phone", ["9876543210", "+91 98765 43210", "09876543210", "98765-43210"])
    def test_phone_variants_normalize(self, phone):
        assert validate_phone(phone) == "9876543210"

    @pytest.mark.unit
    @pytest.mark.parametrize("phone", ["1234567890", "98765", "+1 9876543210"])
    def test_bad_phone(self, phone):
        with pytest.raises(HTTPException) as exc_info:
            validate_phone(phone)
        assert exc_info.value.status_code == 400


class TestMisc:

    @pytest.mark.unit
    def test_hex_color(self):
        assert validate_hex_color("#FFAA00") == "#ffaa00"
        assert validate_hex_color("#abc") == "#abc"

    @pytest.mark.unit
    def test_bad_hex_color_names_field(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_hex_color("navy", field="theme.primary_color")
        assert "theme.primary_color" in exc_info.value.detail

    @pytest.mark.unit
    def test_coupon_code(self):
        assert normalize_coupon_code(" diwali_50 ") == "DIWALI_50"

    @pytest.mark.unit
    @pytest.mark.parametrize("code", ["AB", "HAS SPACE", "X" * 31])
    def test_bad_coupon_code(self, code):
        with pytest.raises(HTTPException):
            normalize_coupon_code(code)

    @pytest.mark.unit
    def test_email(self):
        assert validate_email(" Asha@Example.COM ") == "asha@example.com"
        with pytest.raises(HTTPException):
            validate_email("not-an-email")
