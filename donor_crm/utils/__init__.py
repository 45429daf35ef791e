from .donor_name_formatter import format_donor_name, get_donor_salutation
from .json_parser import parse_json_from_ai_response, strip_code_fences

__all__ = [
    "format_donor_name",
    "get_donor_salutation",
    "parse_json_from_ai_response",
    "strip_code_fences",
]
