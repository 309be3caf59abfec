"""Tests for per-step onboarding validation rules.

Tests verify:
1. Field predicates (phone, postal code, Instagram, username)
2. Blank vs partially filled service entries
3. First-violation-only reporting per step
4. PREVIEW re-checks business info, username and services
"""

from decimal import Decimal

import pytest

from app.services.onboarding_errors import StepValidationError
from app.services.onboarding_types import OnboardingFields, OnboardingStep, ServiceEntry
from app.services.onboarding_validation import (
    MSG_BUSINESS_NAME_REQUIRED,
    MSG_PHONE_FORMAT,
    MSG_SERVICES_REQUIRED,
    MSG_USERNAME_FORMAT,
    MSG_USERNAME_LENGTH,
    MSG_USERNAME_REQUIRED,
    filled_services,
    is_blank_service,
    is_valid_instagram_handle,
    is_valid_phone,
    is_valid_postal_code,
    is_valid_service,
    is_valid_username,
    require_valid_step,
    validate_step,
)

_CORTE = ServiceEntry(name="Corte", price=Decimal(150), duration_minutes=30)


def _complete_fields(**overrides: object) -> OnboardingFields:
    """Fields that pass every step."""
    base = OnboardingFields(
        business_name="Ana's Nails",
        category="unas",
        username="ana-nails",
        services=(_CORTE,),
    )
    return base.merged(overrides) if overrides else base


# =============================================================================
# Field Predicates
# =============================================================================


class TestPhone:
    """Tests for E.164 phone validation."""

    def test_accepts_international_number_with_plus(self) -> None:
        """A Mexican mobile number with country code passes."""
        assert is_valid_phone("+5215512345678")

    def test_rejects_number_without_plus(self) -> None:
        """The leading '+' is required."""
        assert not is_valid_phone("5215512345678")

    def test_rejects_zero_after_plus(self) -> None:
        """Country codes never start with 0."""
        assert not is_valid_phone("+0123")

    def test_rejects_more_than_fifteen_digits(self) -> None:
        """E.164 allows at most 15 digits."""
        assert not is_valid_phone("+1234567890123456")


class TestPostalCodeAndInstagram:
    """Tests for postal code and Instagram handle predicates."""

    @pytest.mark.parametrize("value", ["06700", "01000"])
    def test_accepts_five_digit_postal_codes(self, value: str) -> None:
        """Five digits pass, including leading zeros."""
        assert is_valid_postal_code(value)

    @pytest.mark.parametrize("value", ["0670", "067000", "06a00"])
    def test_rejects_malformed_postal_codes(self, value: str) -> None:
        """Anything but exactly five digits fails."""
        assert not is_valid_postal_code(value)

    def test_instagram_tolerates_leading_at(self) -> None:
        """Users often paste '@handle'."""
        assert is_valid_instagram_handle("@ana.nails_mx")

    def test_instagram_rejects_spaces(self) -> None:
        """Spaces are not allowed in handles."""
        assert not is_valid_instagram_handle("ana nails")


class TestUsernamePredicate:
    """Tests for username length and character set."""

    def test_two_characters_fail(self) -> None:
        """'ab' is below the 3-character minimum."""
        assert not is_valid_username("ab")

    def test_thirty_one_characters_fail(self) -> None:
        """Usernames are capped at 30 characters."""
        assert not is_valid_username("a" * 31)

    def test_hyphens_and_underscores_pass(self) -> None:
        """Hyphens and underscores are allowed."""
        assert is_valid_username("ana_nails-mx")

    def test_dots_fail(self) -> None:
        """Dots are not part of the username alphabet."""
        assert not is_valid_username("ana.nails")


# =============================================================================
# Services
# =============================================================================


class TestServiceEntries:
    """Tests for service validity and blankness."""

    def test_corte_is_valid(self) -> None:
        """Name, positive price and 30 minutes make a valid service."""
        assert is_valid_service(_CORTE)

    def test_empty_entry_is_blank(self) -> None:
        """An untouched form row is blank."""
        assert is_blank_service(ServiceEntry())

    def test_entry_with_only_name_is_not_blank(self) -> None:
        """Typing a name makes the row count."""
        assert not is_blank_service(ServiceEntry(name="Tinte"))

    @pytest.mark.parametrize("price", [Decimal(-5), Decimal(0)])
    def test_entry_with_only_a_price_is_not_blank(self, price: Decimal) -> None:
        """Any entered price, valid or not, makes the row count."""
        entry = ServiceEntry(price=price, duration_minutes=30)
        assert not is_blank_service(entry)
        assert not is_valid_service(entry)

    def test_price_above_maximum_is_invalid(self) -> None:
        """Prices are capped at 999999."""
        assert not is_valid_service(
            ServiceEntry(name="Corte", price=Decimal(1_000_000), duration_minutes=30)
        )

    @pytest.mark.parametrize("minutes", [0, 14, 481])
    def test_duration_out_of_range_is_invalid(self, minutes: int) -> None:
        """Durations must be between 15 and 480 minutes."""
        assert not is_valid_service(
            ServiceEntry(name="Corte", price=Decimal(150), duration_minutes=minutes)
        )

    def test_filled_services_drops_blank_rows(self) -> None:
        """Blank rows are filtered out, order preserved."""
        tinte = ServiceEntry(name="Tinte", price=Decimal(400), duration_minutes=90)
        assert filled_services([_CORTE, ServiceEntry(), tinte]) == [_CORTE, tinte]


# =============================================================================
# Step Rules
# =============================================================================


class TestBasicInfoStep:
    """Tests for BASIC_INFO validation."""

    def test_empty_name_and_category_fail_with_business_message(self) -> None:
        """The message concerns the missing business name/category."""
        fields = OnboardingFields(business_name="", category="")
        assert validate_step(OnboardingStep.BASIC_INFO, fields) == MSG_BUSINESS_NAME_REQUIRED

    def test_missing_category_fails(self) -> None:
        """Category is required alongside the name."""
        fields = OnboardingFields(business_name="Ana's Nails")
        assert validate_step(OnboardingStep.BASIC_INFO, fields) is not None

    def test_one_character_name_fails(self) -> None:
        """Business names need at least 2 characters."""
        fields = OnboardingFields(business_name="A", category="unas")
        assert validate_step(OnboardingStep.BASIC_INFO, fields) is not None

    def test_name_and_category_pass(self) -> None:
        """Ana's Nails in 'unas' passes."""
        fields = OnboardingFields(business_name="Ana's Nails", category="unas")
        assert validate_step(OnboardingStep.BASIC_INFO, fields) is None


class TestContactStep:
    """Tests for CONTACT validation (all optional, format-checked)."""

    def test_all_empty_passes(self) -> None:
        """Contact fields are optional."""
        assert validate_step(OnboardingStep.CONTACT, OnboardingFields()) is None

    def test_malformed_phone_fails(self) -> None:
        """A phone without '+' fails the format rule."""
        fields = OnboardingFields(whatsapp_phone="5215512345678")
        assert validate_step(OnboardingStep.CONTACT, fields) == MSG_PHONE_FORMAT

    def test_reports_only_first_violation(self) -> None:
        """With a bad phone and a bad postal code, only the phone is reported."""
        fields = OnboardingFields(whatsapp_phone="123", postal_code="abc")
        assert validate_step(OnboardingStep.CONTACT, fields) == MSG_PHONE_FORMAT


class TestIdentifierStep:
    """Tests for IDENTIFIER validation."""

    def test_missing_username_fails(self) -> None:
        """A username is required."""
        assert validate_step(OnboardingStep.IDENTIFIER, OnboardingFields()) == (
            MSG_USERNAME_REQUIRED
        )

    def test_two_character_username_fails_length(self) -> None:
        """'ab' fails the length check regardless of availability."""
        fields = OnboardingFields(username="ab")
        assert validate_step(OnboardingStep.IDENTIFIER, fields) == MSG_USERNAME_LENGTH

    def test_bad_characters_fail_format(self) -> None:
        """Spaces are rejected by the character rule."""
        fields = OnboardingFields(username="ana nails")
        assert validate_step(OnboardingStep.IDENTIFIER, fields) == MSG_USERNAME_FORMAT


class TestServicesStep:
    """Tests for SERVICES validation."""

    def test_single_corte_passes(self) -> None:
        """[{Corte, 150, 30}] passes."""
        fields = OnboardingFields(services=(_CORTE,))
        assert validate_step(OnboardingStep.SERVICES, fields) is None

    def test_valid_plus_blank_entry_passes(self) -> None:
        """Blank rows are ignored."""
        fields = OnboardingFields(services=(_CORTE, ServiceEntry()))
        assert validate_step(OnboardingStep.SERVICES, fields) is None

    def test_valid_plus_partial_entry_fails(self) -> None:
        """A partially filled invalid row fails the step."""
        partial = ServiceEntry(name="Tinte")
        fields = OnboardingFields(services=(_CORTE, partial))
        message = validate_step(OnboardingStep.SERVICES, fields)
        assert message is not None
        assert "Service 2" in message

    @pytest.mark.parametrize("price", [-5, "abc", "0"])
    def test_valid_plus_entry_with_only_a_bad_price_fails(self, price: object) -> None:
        """A typed price makes the row count, even with no name."""
        entered = ServiceEntry.from_mapping({"name": "", "price": price, "duration": 30})
        fields = OnboardingFields(services=(_CORTE, entered))

        message = validate_step(OnboardingStep.SERVICES, fields)

        assert message is not None
        assert "Service 2" in message

    def test_no_services_fails(self) -> None:
        """At least one valid service is required."""
        fields = OnboardingFields(services=(ServiceEntry(),))
        assert validate_step(OnboardingStep.SERVICES, fields) == MSG_SERVICES_REQUIRED


class TestPreviewStep:
    """Tests for PREVIEW re-validation."""

    def test_complete_fields_pass(self) -> None:
        """Everything present passes the final check."""
        assert validate_step(OnboardingStep.PREVIEW, _complete_fields()) is None

    def test_missing_services_fail(self) -> None:
        """Services deleted after reaching preview are caught."""
        fields = _complete_fields(services=[])
        assert validate_step(OnboardingStep.PREVIEW, fields) == MSG_SERVICES_REQUIRED

    def test_missing_username_fails(self) -> None:
        """The username is re-checked."""
        fields = _complete_fields(username="")
        assert validate_step(OnboardingStep.PREVIEW, fields) == MSG_USERNAME_REQUIRED


class TestRequireValidStep:
    """Tests for the raising variant."""

    def test_raises_with_message_and_field(self) -> None:
        """The error carries the rule message and offending field."""
        with pytest.raises(StepValidationError) as exc_info:
            require_valid_step(OnboardingStep.IDENTIFIER, OnboardingFields(username="ab"))
        assert exc_info.value.reason == MSG_USERNAME_LENGTH
        assert exc_info.value.field == "username"
        assert exc_info.value.status_code == 400

    def test_passes_silently_when_valid(self) -> None:
        """No exception for valid data."""
        require_valid_step(OnboardingStep.PREVIEW, _complete_fields())
