"""Create/edit book form package."""

from .create import CreateBookForm
from .edit import EditBookForm
from .types import (
    BookFormError,
    BookFormInput,
    FormErrorKind,
    FormResult,
    FormState,
    FormValues,
    format_price_input,
)

__all__ = [
    "BookFormError",
    "BookFormInput",
    "CreateBookForm",
    "EditBookForm",
    "FormErrorKind",
    "FormResult",
    "FormState",
    "FormValues",
    "format_price_input",
]
