"""Structure anonymization for globally shared patterns.

Company-specific section names are replaced by positional names, role
words are generalized and company-specific field types are normalized.
Anonymizing an already anonymized structure changes nothing.
"""

from __future__ import annotations

import re

from ..models import PatternSection, PatternStructure

_COMPANY_SPECIFIC = re.compile(
    r"company|corp|inc|ltd|llc|internal|proprietary", re.IGNORECASE
)

_ROLE_WORDS = (
    (re.compile("employee", re.IGNORECASE), "Person"),
    (re.compile("staff", re.IGNORECASE), "Person"),
    (re.compile("worker", re.IGNORECASE), "Person"),
    (re.compile("customer", re.IGNORECASE), "Entity"),
    (re.compile("client", re.IGNORECASE), "Entity"),
    (re.compile("vendor", re.IGNORECASE), "Entity"),
    (re.compile("supplier", re.IGNORECASE), "Entity"),
)

FIELD_TYPE_NORMALIZATIONS = {
    "employee_id": "identifier",
    "staff_id": "identifier",
    "customer_id": "identifier",
    "client_id": "identifier",
    "company_name": "name",
    "corp_name": "name",
    "internal_code": "code",
    "proprietary_field": "custom_field",
}


def generalize_section_name(name: str, index: int) -> str:
    """Strip company-specific terminology from a section name."""
    if _COMPANY_SPECIFIC.search(name):
        return f"Section {index + 1}"
    for pattern, generic in _ROLE_WORDS:
        name = pattern.sub(generic, name)
    return name


def generalize_field_type(field_type: str) -> str:
    """Normalize a company-specific field type; unknown tokens are kept as-is."""
    return FIELD_TYPE_NORMALIZATIONS.get(field_type.lower(), field_type)


def anonymize(structure: PatternStructure) -> PatternStructure:
    """Return an anonymized copy of a pattern structure."""
    sections = [
        PatternSection(
            name=generalize_section_name(section.name, index),
            field_types=[generalize_field_type(ft) for ft in section.field_types],
            required=section.required,
        )
        for index, section in enumerate(structure.sections)
    ]
    return structure.model_copy(update={"sections": sections}, deep=True)
