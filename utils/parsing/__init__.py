# Parsing subpackage - response body decoding
from .json import parse_response_body, body_field

__all__ = [
    "parse_response_body",
    "body_field",
]
