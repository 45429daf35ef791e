"""
Donor name formatting.

Prefers display_name, then the his/her couple fields, and falls back to
first_name/last_name. Works with ORM rows, pydantic models and dicts.
"""

from typing import Any, Optional


def _field(donor: Any, name: str) -> Optional[str]:
    if isinstance(donor, dict):
        value = donor.get(name)
    else:
        value = getattr(donor, name, None)
    if isinstance(value, str):
        value = value.strip()
    return value or None


def construct_individual_name(
    title: Optional[str],
    first_name: Optional[str],
    initial: Optional[str],
    last_name: Optional[str],
) -> Optional[str]:
    """Join title, first name, initial and last name, or None if all are empty."""
    parts = []
    if title and title.strip():
        parts.append(title.strip())
    if first_name and first_name.strip():
        parts.append(first_name.strip())
    if initial and initial.strip():
        initial = initial.strip()
        parts.append(initial if initial.endswith(".") else f"{initial}.")
    if last_name and last_name.strip():
        parts.append(last_name.strip())
    return " ".join(parts) if parts else None


def _his_name(donor: Any) -> Optional[str]:
    return construct_individual_name(
        _field(donor, "his_title"),
        _field(donor, "his_first_name"),
        _field(donor, "his_initial"),
        _field(donor, "his_last_name"),
    )


def _her_name(donor: Any) -> Optional[str]:
    return construct_individual_name(
        _field(donor, "her_title"),
        _field(donor, "her_first_name"),
        _field(donor, "her_initial"),
        _field(donor, "her_last_name"),
    )


def format_donor_name(donor: Any) -> str:
    """
    Format a donor's name for display.

    Priority:
    1. display_name
    2. his/her names ("His and Her" when both exist)
    3. first_name/last_name
    4. "Unknown Donor"
    """
    display_name = _field(donor, "display_name")
    if display_name:
        return display_name

    his_name = _his_name(donor)
    her_name = _her_name(donor)
    if his_name and her_name:
        return f"{his_name} and {her_name}"
    if his_name:
        return his_name
    if her_name:
        return her_name

    first_name = _field(donor, "first_name") or ""
    last_name = _field(donor, "last_name") or ""
    if first_name or last_name:
        return f"{first_name} {last_name}".strip()

    return "Unknown Donor"


def get_donor_salutation(donor: Any) -> str:
    """Salutation for email greetings, e.g. "Dear Mr. Smith"."""
    display_name = _field(donor, "display_name")
    if display_name:
        return f"Dear {display_name}"

    if _field(donor, "is_couple"):
        his_name = _his_name(donor)
        her_name = _her_name(donor)
        if his_name and her_name:
            return f"Dear {his_name} and {her_name}"

    title = _field(donor, "his_title") or _field(donor, "her_title")
    first_name = _field(donor, "his_first_name") or _field(donor, "her_first_name")
    last_name = _field(donor, "his_last_name") or _field(donor, "her_last_name")

    if title and last_name:
        return f"Dear {title} {last_name}"
    if first_name:
        return f"Dear {first_name}"

    legacy_first_name = _field(donor, "first_name")
    if legacy_first_name:
        return f"Dear {legacy_first_name}"

    return "Dear Friend"
