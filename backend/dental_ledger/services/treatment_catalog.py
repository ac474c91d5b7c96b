from __future__ import annotations

from dental_ledger.models.tooth_treatment import TreatmentCategory
from dental_ledger.services.errors import ValidationError

# treatment_type -> (display label, category)
TREATMENT_TYPES: dict[str, tuple[str, TreatmentCategory]] = {
    "healthy": ("Healthy", TreatmentCategory.preventive),
    "cleaning": ("Cleaning", TreatmentCategory.preventive),
    "fluoride": ("Fluoride", TreatmentCategory.preventive),
    "sealant": ("Fissure sealant", TreatmentCategory.preventive),
    "scaling": ("Scaling", TreatmentCategory.preventive),
    "filling_metal": ("Amalgam filling", TreatmentCategory.restorative),
    "filling_cosmetic": ("Composite filling", TreatmentCategory.restorative),
    "filling_glass_ionomer": ("Glass ionomer filling", TreatmentCategory.restorative),
    "inlay": ("Inlay", TreatmentCategory.restorative),
    "onlay": ("Onlay", TreatmentCategory.restorative),
    "nerve_extraction": ("Pulpectomy", TreatmentCategory.endodontic),
    "pulp_therapy": ("Pulp therapy", TreatmentCategory.endodontic),
    "direct_pulp_cap": ("Direct pulp cap", TreatmentCategory.endodontic),
    "indirect_pulp_cap": ("Indirect pulp cap", TreatmentCategory.endodontic),
    "retreatment": ("Endodontic retreatment", TreatmentCategory.endodontic),
    "extraction_simple": ("Simple extraction", TreatmentCategory.surgical),
    "extraction_surgical": ("Surgical extraction", TreatmentCategory.surgical),
    "implant": ("Implant", TreatmentCategory.surgical),
    "bone_graft": ("Bone graft", TreatmentCategory.surgical),
    "sinus_lift": ("Sinus lift", TreatmentCategory.surgical),
    "apical_resection": ("Apicectomy", TreatmentCategory.surgical),
    "veneer_porcelain": ("Porcelain veneer", TreatmentCategory.cosmetic),
    "veneer_composite": ("Composite veneer", TreatmentCategory.cosmetic),
    "whitening": ("Whitening", TreatmentCategory.cosmetic),
    "bonding": ("Cosmetic bonding", TreatmentCategory.cosmetic),
    "orthodontic_metal": ("Metal braces", TreatmentCategory.orthodontic),
    "orthodontic_ceramic": ("Ceramic braces", TreatmentCategory.orthodontic),
    "orthodontic_clear": ("Clear aligners", TreatmentCategory.orthodontic),
    "retainer": ("Retainer", TreatmentCategory.orthodontic),
    "subgingival_scaling": ("Subgingival scaling", TreatmentCategory.periodontal),
    "root_planing": ("Root planing", TreatmentCategory.periodontal),
    "gum_graft": ("Gum graft", TreatmentCategory.periodontal),
    "pediatric_filling": ("Paediatric filling", TreatmentCategory.pediatric),
    "pulp_amputation": ("Pulpotomy", TreatmentCategory.pediatric),
    "stainless_crown": ("Stainless steel crown", TreatmentCategory.pediatric),
    "space_maintainer_fixed": ("Fixed space maintainer", TreatmentCategory.pediatric),
    "crown_metal": ("Metal crown", TreatmentCategory.prosthetic),
    "crown_ceramic": ("Ceramic crown", TreatmentCategory.prosthetic),
    "crown_zirconia": ("Zirconia crown", TreatmentCategory.prosthetic),
    "bridge": ("Bridge", TreatmentCategory.prosthetic),
}


def treatment_label(treatment_type: str | None) -> str:
    if not treatment_type:
        return "Treatment"
    entry = TREATMENT_TYPES.get(treatment_type)
    if entry is None:
        return treatment_type.replace("_", " ").strip().capitalize()
    return entry[0]


def tooth_label(tooth_name: str | None, tooth_number: int) -> str:
    return tooth_name.strip() if tooth_name and tooth_name.strip() else str(tooth_number)


def expected_category(treatment_type: str | None) -> TreatmentCategory | None:
    entry = TREATMENT_TYPES.get(treatment_type or "")
    return entry[1] if entry is not None else None


def check_type_category(treatment_type: str | None, category) -> None:
    """Reject a known treatment type filed under another category.

    Types missing from the catalog are free-form and accept any category.
    """
    expected = expected_category(treatment_type)
    if expected is None or category is None:
        return
    value = getattr(category, "value", category)
    if value != expected.value:
        raise ValidationError(
            f"{treatment_label(treatment_type)} belongs to the {expected.value} category, not {value}"
        )
