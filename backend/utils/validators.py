"""
Input validation utilities for the Radeo Storefront API.

Shared normalizers for slugs, coupon codes, Indian pincodes / phone numbers
and theme colours. Each raises ValidationError (400) on bad input and returns
the normalized value otherwise.
"""
import re

from domain.errors import ValidationError

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_PINCODE_RE = re.compile(r"^[1-9][0-9]{5}$")
_PHONE_RE = re.compile(r"^[6-9][0-9]{9}$")
_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_COUPON_RE = re.compile(r"^[A-Z0-9_-]{3,30}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def slugify(text: str) -> str:
    """Lowercase, hyphen-separated slug from free text."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug


def validate_slug(slug: str) -> str:
    slug = (slug or "").strip().lower()
    if not _SLUG_RE.match(slug):
        raise ValidationError("must contain lowercase letters, digits and hyphens only", field="slug")
    return slug


def validate_pincode(pincode: str) -> str:
    pincode = (pincode or "").strip()
    if not _PINCODE_RE.match(pincode):
        raise ValidationError("must be a 6-digit Indian pincode", field="pincode")
    return pincode


def validate_phone(phone: str) -> str:
    """Accepts 10-digit mobile numbers, optionally prefixed with +91 or 0."""
    digits = re.sub(r"[\s-]", "", phone or "")
    if digits.startswith("+91"):
        digits = digits[3:]
    elif digits.startswith("0") and len(digits) == 11:
        digits = digits[1:]
    if not _PHONE_RE.match(digits):
        raise ValidationError("must be a valid 10-digit mobile number", field="phone")
    return digits


def validate_hex_color(value: str, field: str = "color") -> str:
    if not isinstance(value, str) or not _HEX_COLOR_RE.match(value):
        raise ValidationError(f"'{value}' is not a hex colour like #1a1a1a", field=field)
    return value.lower()


def normalize_coupon_code(code: str) -> str:
    code = (code or "").strip().upper()
    if not _COUPON_RE.match(code):
        raise ValidationError("must be 3-30 characters of A-Z, 0-9, '-' or '_'", field="code")
    return code


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("is not a valid email address", field="email")
    return email
