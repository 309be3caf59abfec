"""Tests for onboarding step inference and reconciliation.

Tests verify:
1. Inference precedence (basic info → username → services → preview)
2. Inference is deterministic and idempotent for any field set
3. Stored counters win when the data supports them, and are clamped
   otherwise
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.services.onboarding_steps import infer_step, reconcile_step
from app.services.onboarding_types import OnboardingFields, OnboardingStep, ServiceEntry

_CORTE = ServiceEntry(name="Corte", price=Decimal(150), duration_minutes=30)

_FULL = OnboardingFields(
    business_name="Ana's Nails",
    category="unas",
    username="ana-nails",
    services=(_CORTE,),
)

# =============================================================================
# Strategies
# =============================================================================

services_strategy = st.builds(
    ServiceEntry,
    name=st.text(max_size=10),
    price=st.none() | st.decimals(min_value=-10, max_value=2000, places=2),
    duration_minutes=st.integers(min_value=0, max_value=600),
)

fields_strategy = st.builds(
    OnboardingFields,
    business_name=st.text(max_size=20),
    category=st.sampled_from(["", "unas", "haircut", "other"]),
    username=st.text(
        alphabet="abc-_ 1", max_size=35
    ),
    services=st.lists(services_strategy, max_size=3).map(tuple),
)


# =============================================================================
# Inference
# =============================================================================


class TestInferStep:
    """Tests for infer_step precedence."""

    def test_empty_record_starts_at_basic_info(self) -> None:
        """Nothing entered yet → first step."""
        assert infer_step(OnboardingFields()) is OnboardingStep.BASIC_INFO

    def test_missing_username_infers_identifier(self) -> None:
        """Business info alone → the username step."""
        fields = OnboardingFields(business_name="Ana's Nails", category="unas")
        assert infer_step(fields) is OnboardingStep.IDENTIFIER

    def test_short_username_infers_identifier(self) -> None:
        """A 2-character username does not count."""
        fields = _FULL.merged({"username": "ab"})
        assert infer_step(fields) is OnboardingStep.IDENTIFIER

    def test_no_valid_service_infers_services(self) -> None:
        """Username present but no valid service → services step."""
        fields = _FULL.merged({"services": [{"name": "Tinte"}]})
        assert infer_step(fields) is OnboardingStep.SERVICES

    def test_complete_data_infers_preview(self) -> None:
        """Everything present → preview."""
        assert infer_step(_FULL) is OnboardingStep.PREVIEW

    def test_contact_is_never_inferred(self) -> None:
        """CONTACT fields are optional, so inference skips over it."""
        fields = OnboardingFields(
            business_name="Ana's Nails", category="unas", whatsapp_phone="+5215512345678"
        )
        assert infer_step(fields) is not OnboardingStep.CONTACT

    @given(fields_strategy)
    def test_inference_is_idempotent(self, fields: OnboardingFields) -> None:
        """Repeated calls on the same data agree."""
        assert infer_step(fields) is infer_step(fields)

    @given(fields_strategy)
    def test_reconciling_inferred_step_is_a_fixed_point(
        self, fields: OnboardingFields
    ) -> None:
        """Feeding the inferred step back as the stored counter keeps it."""
        inferred = infer_step(fields)
        assert reconcile_step(int(inferred), fields) is inferred


# =============================================================================
# Reconciliation
# =============================================================================


class TestReconcileStep:
    """Tests for reconcile_step."""

    def test_stored_contact_step_is_kept(self) -> None:
        """The counter knows about CONTACT; inference cannot."""
        fields = OnboardingFields(business_name="Ana's Nails", category="unas")
        assert reconcile_step(2, fields) is OnboardingStep.CONTACT

    def test_stored_step_behind_data_is_kept(self) -> None:
        """A user who went back stays where they were."""
        assert reconcile_step(1, _FULL) is OnboardingStep.BASIC_INFO

    def test_stale_preview_counter_is_clamped(self) -> None:
        """Services deleted elsewhere pull preview back to services."""
        fields = _FULL.merged({"services": []})
        assert reconcile_step(5, fields) is OnboardingStep.SERVICES

    @pytest.mark.parametrize("stored", [None, 0, 6, -1])
    def test_missing_or_out_of_range_falls_back_to_inference(
        self, stored: int | None
    ) -> None:
        """Garbage counters are ignored."""
        assert reconcile_step(stored, _FULL) is OnboardingStep.PREVIEW
