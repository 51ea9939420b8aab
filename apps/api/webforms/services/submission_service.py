"""Submission pipeline: gates, validation, storage and notification dispatch."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from webforms.core.csrf import XSRF_COOKIE_NAME, XSRF_FIELD
from webforms.core.errors import NotificationError, StorageError, TemplateError, TemplateRenderError
from webforms.core.structured_logging import build_log_context
from webforms.schemas.forms import Credentials, FormDefinition
from webforms.services import access_service
from webforms.services.access_service import Decision
from webforms.services.captcha_service import Captcha, CaptchaRequest, validate_all
from webforms.services.field_parser import FieldError, parse_fields
from webforms.services.notifications.base import Notification, NotifyEvent
from webforms.services.storage.base import Storage
from webforms.services.template_service import Renderer, request_context, result_context
from webforms.types import RawValues, SessionState

logger = logging.getLogger(__name__)

SESSION_PREFIX = "__"


class OutcomeState(str, enum.Enum):
    FORM = "form"
    CODE_PROMPT = "code_prompt"
    FORBIDDEN = "forbidden"
    INVALID = "invalid"
    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"


@dataclass
class FormRuntime:
    """A loaded form bound to its notification handles."""

    definition: FormDefinition
    notifications: list[Notification] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass
class SubmissionRequest:
    method: str
    form: RawValues = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    credentials: Credentials | None = None
    remote_ip: str = ""
    path: str = ""

    def value(self, name: str) -> str:
        values = self.form.get(name) or []
        return values[0] if values else ""

    def session(self) -> SessionState:
        """Session state carried in ``__<key>`` POST fields."""
        if self.method.upper() != "POST":
            return {}
        return {
            key[len(SESSION_PREFIX):]: values[0]
            for key, values in self.form.items()
            if key.startswith(SESSION_PREFIX) and len(key) > len(SESSION_PREFIX) and values
        }


@dataclass
class SubmissionOutcome:
    state: OutcomeState
    status_code: int
    session: SessionState = field(default_factory=dict)
    errors: list[FieldError] = field(default_factory=list)
    values: RawValues = field(default_factory=dict)
    defaults: dict[str, str] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    message: str = ""
    reason: str = ""

    @property
    def shows_form(self) -> bool:
        return self.state in (OutcomeState.FORM, OutcomeState.INVALID)


def local_timezone() -> tzinfo:
    return datetime.now().astimezone().tzinfo


def resolve_timezone(name: str | None) -> tzinfo:
    """Client timezone by IANA name, server-local when missing or unknown."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Failed to load client timezone %r, local will be used", name)
    return local_timezone()


class SubmissionService:
    """Sequences the request-level state machine for one form submission."""

    def __init__(
        self,
        storage: Storage,
        renderer: Renderer,
        *,
        captchas: Sequence[Captcha] = (),
        xsrf: bool = True,
    ):
        self.storage = storage
        self.renderer = renderer
        self.captchas = list(captchas)
        self.xsrf = xsrf

    async def handle(self, runtime: FormRuntime, request: SubmissionRequest) -> SubmissionOutcome:
        """
        Process one GET or POST for a form.

        Never raises except on cancellation: every failure becomes an outcome.
        """
        session = request.session()
        try:
            return await self._handle(runtime, request, session)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Unexpected failure handling form %s",
                runtime.name,
                extra=self._log_context(runtime, request),
            )
            return SubmissionOutcome(OutcomeState.ERROR, 500, session=session, reason="internal")

    async def _handle(
        self, runtime: FormRuntime, request: SubmissionRequest, session: SessionState
    ) -> SubmissionOutcome:
        form = runtime.definition
        method = request.method.upper()
        log_extra = self._log_context(runtime, request)

        if method == "POST" and self.xsrf:
            if access_service.check_xsrf(request.cookies.get(XSRF_COOKIE_NAME), request.value(XSRF_FIELD)) != Decision.ALLOW:
                logger.warning("XSRF verification failed for form %s", form.name, extra=log_extra)
                return SubmissionOutcome(OutcomeState.FORBIDDEN, 403, session=session, reason="xsrf")

        if access_service.check_policy(form, request.credentials) != Decision.ALLOW:
            logger.info("Access denied by policy for form %s", form.name, extra=log_extra)
            return SubmissionOutcome(OutcomeState.FORBIDDEN, 403, session=session, reason="policy")

        code = access_service.check_code(
            form,
            method=method,
            session=session,
            submitted_code=request.value(access_service.ACCESS_CODE_FIELD),
        )
        if code.decision != Decision.ALLOW:
            return SubmissionOutcome(OutcomeState.CODE_PROMPT, 401, session=session, reason="code")

        context = request_context(
            headers=request.headers,
            query=request.query,
            form={key: values[0] for key, values in request.form.items() if values},
            code=code.code,
            credentials=request.credentials,
        )

        if method != "POST" or access_service.pop_fresh(session):
            return SubmissionOutcome(
                OutcomeState.FORM,
                200,
                session=session,
                defaults=self.render_defaults(form, context),
            )

        if self.captchas:
            captcha_request = CaptchaRequest(form=request.form, remote_ip=request.remote_ip)
            if not await validate_all(self.captchas, captcha_request):
                logger.info("Captcha validation failed for form %s", form.name, extra=log_extra)
                return SubmissionOutcome(OutcomeState.FORBIDDEN, 403, session=session, reason="captcha")

        tz = resolve_timezone(session.get(access_service.SESSION_TIMEZONE))
        fields, errors = parse_fields(form, request.form, tz, self.renderer, context)
        if errors:
            logger.info("Form %s validation failed", form.name, extra=log_extra)
            return SubmissionOutcome(
                OutcomeState.INVALID,
                422,
                session=session,
                errors=errors,
                values=_user_values(request.form),
                defaults=self.render_defaults(form, context),
            )

        try:
            result = await self.storage.store(form.table, fields)
        except StorageError as exc:
            logger.error("Failed to store submission for form %s: %s", form.name, exc, extra=log_extra)
            return SubmissionOutcome(
                OutcomeState.FAILED,
                500,
                session=session,
                message=self._render_message(form.failed, form, None, exc),
                reason="storage",
            )

        message = self._render_message(form.success, form, result, None)
        await self._notify(runtime, NotifyEvent(form=form, result=dict(result)))
        access_service.mark_fresh(session)
        logger.info("Stored submission for form %s", form.name, extra=log_extra)
        return SubmissionOutcome(OutcomeState.SUCCESS, 200, session=session, result=result, message=message)

    def render_defaults(self, form: FormDefinition, context: Mapping[str, Any]) -> dict[str, str]:
        """Render field defaults for display. Failing defaults render empty."""
        defaults: dict[str, str] = {}
        for item in form.fields:
            if not item.default:
                continue
            try:
                defaults[item.name] = self.renderer.render(item.default, context)
            except (TemplateError, TemplateRenderError) as exc:
                logger.warning("Failed to render default of %s.%s: %s", form.name, item.name, exc)
                defaults[item.name] = ""
        return defaults

    def _render_message(
        self,
        source: str,
        form: FormDefinition,
        result: Mapping[str, Any] | None,
        error: Exception | None,
    ) -> str:
        try:
            return self.renderer.render(source, result_context(form=form, result=result, error=error))
        except (TemplateError, TemplateRenderError) as exc:
            logger.error("Failed to render result message for form %s: %s", form.name, exc)
            return source

    async def _notify(self, runtime: FormRuntime, event: NotifyEvent) -> None:
        """Enqueue every target; a failing target never affects its siblings."""
        for notification in runtime.notifications:
            try:
                await notification.dispatch(event)
            except NotificationError as exc:
                logger.error("Failed to dispatch notification for form %s: %s", runtime.name, exc)

    @staticmethod
    def _log_context(runtime: FormRuntime, request: SubmissionRequest) -> dict[str, Any]:
        return build_log_context(
            form=runtime.name,
            method=request.method,
            path=request.path,
            remote_ip=request.remote_ip,
            user=request.credentials.user if request.credentials else None,
        )


def _user_values(form: RawValues) -> RawValues:
    """Submitted values to echo back, without session and XSRF entries."""
    return {
        key: list(values)
        for key, values in form.items()
        if not key.startswith(SESSION_PREFIX) and key != XSRF_FIELD
    }
