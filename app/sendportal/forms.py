"""
Form state carried across the post/redirect/get cycle.

A failed submission stores the field errors and the submitted values in the
session; the next rendered page consumes them once.
"""
from __future__ import annotations

from typing import Any

from flask import session

ERRORS_KEY = "errors"
OLD_INPUT_KEY = "old_input"


def remember_form_errors(errors: dict[str, str], old_input: dict[str, Any]) -> None:
    session[ERRORS_KEY] = dict(errors)
    session[OLD_INPUT_KEY] = {k: v for k, v in old_input.items() if v is not None}


def consume_form_state() -> dict:
    errors = session.pop(ERRORS_KEY, None) or {}
    old_input = session.pop(OLD_INPUT_KEY, None) or {}

    def old(field: str, default: Any = "") -> Any:
        if field in old_input:
            return old_input[field]
        return "" if default is None else default

    return {"errors": errors, "old": old}
