"""
Middleware package for reqparser.
"""

from reqparser.middleware.base import Middleware
from reqparser.middleware.forms import FormParserMiddleware

__all__ = [
    "Middleware",
    "FormParserMiddleware",
]
