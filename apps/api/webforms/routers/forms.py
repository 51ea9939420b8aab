"""Form listing, rendering and submission endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from webforms.core.config import settings
from webforms.core.csrf import generate_xsrf_token, set_xsrf_cookie
from webforms.core.deps import get_credentials, get_registry
from webforms.core.rate_limit import SUBMIT_LIMIT, limiter
from webforms.core.security import client_ip
from webforms.schemas.forms import Credentials, FormDefinition
from webforms.schemas.views import (
    FieldErrorRead,
    FieldRead,
    FormListItem,
    FormListResponse,
    FormRead,
    OptionRead,
    SubmissionView,
)
from webforms.services.form_registry import FormRegistry
from webforms.services.submission_service import OutcomeState, SubmissionOutcome, SubmissionRequest
from webforms.services.template_service import render_markdown
from webforms.types import RawValues

logger = logging.getLogger(__name__)

router = APIRouter(tags=["forms"])


def _form_read(form: FormDefinition, defaults: dict[str, str], *, with_fields: bool = True) -> FormRead:
    fields = []
    if with_fields:
        fields = [
            FieldRead(
                name=field.name,
                label=field.display_label,
                description_html=render_markdown(field.description) if field.description else "",
                required=field.required,
                disabled=field.disabled,
                hidden=field.hidden,
                type=field.type,
                pattern=field.pattern,
                options=[OptionRead(label=opt.label, value=opt.effective_value) for opt in field.options],
                multiple=field.multiple,
                multiline=field.multiline,
                icon=field.icon,
                default=defaults.get(field.name, ""),
            )
            for field in form.fields
        ]
    return FormRead(
        name=form.name,
        title=form.display_title,
        description_html=render_markdown(form.description) if form.description else "",
        has_code_access=form.has_code_access,
        fields=fields,
    )


async def _read_form(request: Request) -> RawValues:
    """Text values of a urlencoded or multipart body, in submission order."""
    values: RawValues = {}
    body = await request.form()
    for key, value in body.multi_items():
        if isinstance(value, str):
            values.setdefault(key, []).append(value)
    return values


def _respond(registry: FormRegistry, form: FormDefinition, outcome: SubmissionOutcome) -> JSONResponse:
    view = SubmissionView(
        state=outcome.state.value,
        session=outcome.session,
        errors=[FieldErrorRead(field=e.field, message=e.message) for e in outcome.errors],
        values=outcome.values,
        message=outcome.message,
        message_html=render_markdown(outcome.message) if outcome.message else "",
        result=outcome.result,
        reason=outcome.reason,
    )

    token = None
    if outcome.shows_form or outcome.state == OutcomeState.CODE_PROMPT:
        view.form = _form_read(form, outcome.defaults, with_fields=outcome.shows_form)
        if registry.xsrf:
            token = generate_xsrf_token()
            view.xsrf = token
    if outcome.shows_form:
        view.captcha = [captcha.embed() for captcha in registry.captchas]

    response = JSONResponse(content=view.model_dump(mode="json"), status_code=outcome.status_code)
    if token:
        set_xsrf_cookie(response, token)
    return response


async def _handle(
    request: Request,
    name: str,
    registry: FormRegistry,
    credentials: Credentials | None,
) -> JSONResponse:
    runtime = registry.get(name)
    if runtime is None:
        raise HTTPException(status_code=404, detail="Form not found")

    form_values: RawValues = {}
    if request.method == "POST":
        form_values = await _read_form(request)

    submission = SubmissionRequest(
        method=request.method,
        form=form_values,
        query=dict(request.query_params),
        headers=dict(request.headers),
        cookies=dict(request.cookies),
        credentials=credentials,
        remote_ip=client_ip(request, trust_proxy=settings.TRUST_PROXY_HEADERS),
        path=request.url.path,
    )
    outcome = await registry.submissions.handle(runtime, submission)
    return _respond(registry, runtime.definition, outcome)


@router.get("/", response_model=FormListResponse)
async def list_forms(
    registry: FormRegistry = Depends(get_registry),
    credentials: Credentials | None = Depends(get_credentials),
):
    """List forms admitted for the caller."""
    if not registry.listing:
        raise HTTPException(status_code=404, detail="Listing disabled")
    return FormListResponse(
        forms=[
            FormListItem(
                name=runtime.name,
                title=runtime.definition.display_title,
                description_html=render_markdown(runtime.definition.description)
                if runtime.definition.description
                else "",
            )
            for runtime in registry.visible(credentials)
        ]
    )


@router.get("/forms/{name:path}")
async def show_form(
    request: Request,
    name: str,
    registry: FormRegistry = Depends(get_registry),
    credentials: Credentials | None = Depends(get_credentials),
):
    return await _handle(request, name, registry, credentials)


@router.post("/forms/{name:path}")
@limiter.limit(SUBMIT_LIMIT)
async def submit_form(
    request: Request,
    name: str,
    registry: FormRegistry = Depends(get_registry),
    credentials: Credentials | None = Depends(get_credentials),
):
    return await _handle(request, name, registry, credentials)
