# Utils package - Utility modules organized by domain

from .parsing.json import parse_response_body

__all__ = [
    "parse_response_body",
]
