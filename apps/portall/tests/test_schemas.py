"""Request validation tests for the Pydantic models."""
import pytest
from datetime import date, timedelta
from pydantic import ValidationError
from portall.models.schemas import (
    RegisterRequest,
    ResetPasswordRequest,
    PlayerProfileUpdate,
    EvaluationRequest,
    SubscriptionCreate,
    NJCAASettingsUpdate,
    CoachProfileUpdate,
)


def _register_payload(**overrides):
    payload = {
        "email": " Player@Example.com ",
        "password": "Password123",
        "confirm_password": "Password123",
        "first_name": "Pat",
        "last_name": "Kicker",
        "user_type": "player",
        "gender": "male",
        "college_id": 1,
    }
    payload.update(overrides)
    return payload


def _evaluation_payload(**overrides):
    payload = {
        "available_to_transfer": True,
        "expected_graduation_date": 2026,
        "role_in_team": "Starter",
        "performance_level": "High",
        "player_strengths": "Pace and first touch",
        "improvement_areas": "Aerial duels in the box",
        "mentality": "Competitive and focused",
        "coachability": "Takes feedback well",
        "technique": "Clean passing under pressure",
        "physique": "Quick with good stamina",
        "coach_final_comment": "Ready to contribute at the next level.",
    }
    payload.update(overrides)
    return payload


class TestRegisterRequest:
    def test_email_is_normalized(self):
        assert RegisterRequest(**_register_payload()).email == "player@example.com"

    @pytest.mark.parametrize("password", ["password123", "PASSWORD123", "Passwordabc", "Pw1"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError):
            RegisterRequest(**_register_payload(password=password, confirm_password=password))

    def test_password_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="do not match"):
            RegisterRequest(**_register_payload(confirm_password="Password999"))

    def test_admin_cannot_self_register(self):
        with pytest.raises(ValidationError):
            RegisterRequest(**_register_payload(user_type="admin"))

    def test_coach_division_must_be_ncaa_or_naia(self):
        coach = _register_payload(
            user_type="coach",
            position="head_coach",
            phone_number="+1 555 123 4567",
            team_sport="mens_soccer",
            division="NAIA",
        )
        with pytest.raises(ValidationError):
            RegisterRequest(**coach)
        assert RegisterRequest(**{**coach, "division": "naia"}).division == "naia"
        with pytest.raises(ValidationError):
            RegisterRequest(**{**coach, "division": "njcaa_d1"})

    def test_njcaa_coach_division_must_be_njcaa(self):
        coach = _register_payload(
            user_type="njcaa_coach",
            position="assistant_coach",
            phone_number="5551234567",
            team_sport="womens_soccer",
            division="njcaa_d2",
        )
        assert RegisterRequest(**coach).division == "njcaa_d2"
        with pytest.raises(ValidationError):
            RegisterRequest(**{**coach, "division": "ncaa_d1"})

    def test_invalid_phone_rejected(self):
        with pytest.raises(ValidationError):
            RegisterRequest(**_register_payload(user_type="coach", phone_number="12ab"))

    def test_profile_data_contains_role_fields(self):
        data = RegisterRequest(**_register_payload()).profile_data()
        assert data["college_id"] == 1
        assert data["gender"].value == "male"


def test_reset_password_requires_strong_password():
    with pytest.raises(ValidationError):
        ResetPasswordRequest(token="abc", password="weakpassword")
    assert ResetPasswordRequest(token="abc", password="Stronger123").password == "Stronger123"


class TestPlayerProfileUpdate:
    @pytest.mark.parametrize("field,value", [
        ("height", 139), ("height", 221),
        ("weight", 39), ("weight", 151),
        ("graduation_year", 2023), ("graduation_year", 2031),
    ])
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            PlayerProfileUpdate(**{field: value})

    def test_only_sent_fields_are_set(self):
        update = PlayerProfileUpdate(height=180)
        assert update.model_dump(exclude_unset=True) == {"height": 180}

    @pytest.mark.parametrize("field", ["gender", "college_id"])
    def test_explicit_null_on_required_column_rejected(self, field):
        with pytest.raises(ValidationError, match="cannot be null"):
            PlayerProfileUpdate(**{field: None})

    def test_nullable_fields_can_be_cleared(self):
        update = PlayerProfileUpdate(position=None, height=None)
        assert update.model_dump(exclude_unset=True) == {"position": None, "height": None}

    def test_birth_date_must_be_in_the_past(self):
        with pytest.raises(ValidationError):
            PlayerProfileUpdate(date_of_birth=date.today())
        with pytest.raises(ValidationError):
            PlayerProfileUpdate(date_of_birth=date(1979, 12, 31))
        yesterday = date.today() - timedelta(days=1)
        assert PlayerProfileUpdate(date_of_birth=yesterday).date_of_birth == yesterday


@pytest.mark.parametrize("field", ["position", "phone_number", "college_id", "division", "team_sport"])
def test_coach_update_rejects_null_on_required_column(field):
    with pytest.raises(ValidationError, match="cannot be null"):
        CoachProfileUpdate(**{field: None})


@pytest.mark.parametrize("phone", ["+" + "1" * 20, "555.123.4567", "123456789", "555-123-4567 ext"])
def test_malformed_phone_numbers_rejected(phone):
    with pytest.raises(ValidationError):
        NJCAASettingsUpdate(phone_number=phone)


@pytest.mark.parametrize("phone", ["+" + "1" * 19, "(555) 123-4567", "5551234567"])
def test_well_formed_phone_numbers_accepted(phone):
    assert NJCAASettingsUpdate(phone_number=phone).phone_number == phone


class TestEvaluationRequest:
    def test_valid_evaluation_strips_text(self):
        evaluation = EvaluationRequest(**_evaluation_payload(role_in_team="  Captain  "))
        assert evaluation.role_in_team == "Captain"

    def test_short_final_comment_rejected(self):
        with pytest.raises(ValidationError):
            EvaluationRequest(**_evaluation_payload(coach_final_comment="Too short"))

    def test_graduation_year_range(self):
        with pytest.raises(ValidationError):
            EvaluationRequest(**_evaluation_payload(expected_graduation_date=2031))

    def test_blank_text_rejected(self):
        with pytest.raises(ValidationError):
            EvaluationRequest(**_evaluation_payload(mentality="          "))

    def test_padding_does_not_count_towards_minimum_length(self):
        with pytest.raises(ValidationError):
            EvaluationRequest(**_evaluation_payload(mentality="   short    "))
        with pytest.raises(ValidationError):
            EvaluationRequest(**_evaluation_payload(coach_final_comment="Too short" + " " * 20))


def test_subscription_requires_stripe_payment_method():
    with pytest.raises(ValidationError):
        SubscriptionCreate(plan_id=1, payment_method_id="card_123")
    assert SubscriptionCreate(plan_id=1, payment_method_id="pm_card_visa").plan_id == 1


def test_njcaa_settings_phone_is_trimmed():
    assert NJCAASettingsUpdate(phone_number=" (555) 123-4567 ").phone_number == "(555) 123-4567"
