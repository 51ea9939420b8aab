"""Admission gates: XSRF, policy and access codes."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from webforms.core.csrf import validate_xsrf
from webforms.schemas.forms import Credentials, FormDefinition
from webforms.services import policy_service
from webforms.types import SessionState

logger = logging.getLogger(__name__)

ACCESS_CODE_FIELD = "accessCode"
SESSION_CODE = "code"
SESSION_TIMEZONE = "tz"
SESSION_FRESH = "fresh"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    FORBIDDEN = "forbidden"
    PROMPT = "prompt"


@dataclass
class CodeCheck:
    decision: Decision
    code: str = ""
    promoted: bool = False  # code came from the submission and was stored in session


def check_xsrf(cookie_token: str | None, form_token: str | None) -> Decision:
    if validate_xsrf(cookie_token, form_token):
        return Decision.ALLOW
    return Decision.FORBIDDEN


def check_policy(form: FormDefinition, credentials: Credentials | None) -> Decision:
    if policy_service.is_allowed(form, credentials):
        return Decision.ALLOW
    return Decision.FORBIDDEN


def check_code(
    form: FormDefinition,
    *,
    method: str,
    session: SessionState,
    submitted_code: str = "",
) -> CodeCheck:
    """
    Gate a form protected by access codes.

    A valid code stored in session wins; a stale one is dropped from session.
    Otherwise the submitted code is validated and, when accepted, promoted
    into session together with the fresh flag. A rejected submitted code
    leaves session untouched.
    """
    if not form.has_code_access:
        return CodeCheck(Decision.ALLOW)
    if method != "POST":
        return CodeCheck(Decision.PROMPT)

    code = session.get(SESSION_CODE, "")
    if code:
        if code in form.codes:
            return CodeCheck(Decision.ALLOW, code=code)
        # Codes were rotated; forget the stale one and check the submission
        logger.info("Stored access code rejected for form %s", form.name)
        session.pop(SESSION_CODE, None)

    code = submitted_code.strip()
    if not code or code not in form.codes:
        if code:
            logger.info("Invalid access code submitted for form %s", form.name)
        return CodeCheck(Decision.PROMPT)

    session[SESSION_CODE] = code
    session[SESSION_FRESH] = "true"
    return CodeCheck(Decision.ALLOW, code=code, promoted=True)


def pop_fresh(session: SessionState) -> bool:
    """Consume the fresh flag."""
    return session.pop(SESSION_FRESH, "") != ""


def mark_fresh(session: SessionState) -> None:
    session[SESSION_FRESH] = "true"
