import pytest

from dental_ledger.models import TreatmentCategory
from dental_ledger.services.errors import ValidationError
from dental_ledger.services.treatment_catalog import (
    check_type_category,
    expected_category,
    treatment_label,
)


@pytest.mark.parametrize(
    "treatment_type, category",
    [
        ("crown_zirconia", TreatmentCategory.prosthetic),
        ("crown_zirconia", "prosthetic"),
        ("root_planing", TreatmentCategory.periodontal),
        ("night_guard", TreatmentCategory.cosmetic),
        (None, TreatmentCategory.surgical),
    ],
)
def test_matching_or_free_form_pairs_pass(treatment_type, category):
    check_type_category(treatment_type, category)


def test_known_type_in_wrong_category_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        check_type_category("bridge", TreatmentCategory.orthodontic)

    assert "Bridge belongs to the prosthetic category" in str(excinfo.value)


def test_expected_category_lookup():
    assert expected_category("implant") == TreatmentCategory.surgical
    assert expected_category("night_guard") is None
    assert treatment_label("night_guard") == "Night guard"
