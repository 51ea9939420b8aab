"""Loaded forms bound to their dispatchers and the submission pipeline."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import httpx

from webforms.core.config import Settings, settings as default_settings
from webforms.schemas.forms import Credentials, FormDefinition
from webforms.services import policy_service
from webforms.services.captcha_service import Captcha, captchas_from_settings
from webforms.services.form_loader import compile_form_templates, load_forms
from webforms.services.notifications.amqp import AMQPDispatcher, Connect
from webforms.services.notifications.webhook import WebhookDispatcher
from webforms.services.storage import Storage, storage_from_settings
from webforms.services.submission_service import FormRuntime, SubmissionService
from webforms.services.template_service import Renderer

logger = logging.getLogger(__name__)


class FormRegistry:
    """Everything the HTTP layer needs to serve the loaded forms."""

    def __init__(
        self,
        forms: Iterable[FormRuntime],
        *,
        submissions: SubmissionService,
        webhooks: WebhookDispatcher,
        amqp: AMQPDispatcher | None = None,
        listing: bool = True,
        auth_headers: bool = False,
    ):
        self._forms = {runtime.name: runtime for runtime in forms}
        self.submissions = submissions
        self.webhooks = webhooks
        self.amqp = amqp
        self.listing = listing
        self.auth_headers = auth_headers

    @property
    def renderer(self) -> Renderer:
        return self.submissions.renderer

    @property
    def storage(self) -> Storage:
        return self.submissions.storage

    @property
    def xsrf(self) -> bool:
        return self.submissions.xsrf

    @property
    def captchas(self) -> list[Captcha]:
        return self.submissions.captchas

    def __len__(self) -> int:
        return len(self._forms)

    def __iter__(self):
        return iter(self._forms.values())

    def get(self, name: str) -> FormRuntime | None:
        return self._forms.get(name)

    def visible(self, credentials: Credentials | None) -> list[FormRuntime]:
        """Forms admitted by their policy, sorted by name."""
        return [
            runtime
            for name, runtime in sorted(self._forms.items())
            if policy_service.is_allowed(runtime.definition, credentials)
        ]

    def dispatchers(self) -> list[Any]:
        running: list[Any] = [self.webhooks]
        if self.amqp is not None:
            running.append(self.amqp)
        return running


def build_registry(
    definitions: Sequence[FormDefinition],
    *,
    storage: Storage,
    renderer: Renderer | None = None,
    captchas: Sequence[Captcha] = (),
    xsrf: bool = True,
    listing: bool = True,
    auth_headers: bool = False,
    webhooks_buffer: int = 100,
    amqp_url: str = "",
    amqp_buffer: int = 100,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
    amqp_connect: Connect | None = None,
) -> FormRegistry:
    """Bind every notification target of every form to its dispatcher."""
    renderer = renderer or Renderer()
    webhooks = WebhookDispatcher(webhooks_buffer, renderer=renderer, transport=webhook_transport)
    amqp = AMQPDispatcher(amqp_url, amqp_buffer, renderer=renderer, connect=amqp_connect) if amqp_url else None

    runtimes: list[FormRuntime] = []
    for definition in definitions:
        compile_form_templates(definition, renderer)
        notifications = [webhooks.create(target) for target in definition.webhooks]
        if definition.amqp:
            if amqp is None:
                logger.warning(
                    "Form %s declares %d AMQP target(s) but AMQP_URL is not set, skipping",
                    definition.name,
                    len(definition.amqp),
                )
            else:
                notifications.extend(amqp.create(target) for target in definition.amqp)
        runtimes.append(FormRuntime(definition, notifications))

    submissions = SubmissionService(storage, renderer, captchas=captchas, xsrf=xsrf)
    return FormRegistry(
        runtimes,
        submissions=submissions,
        webhooks=webhooks,
        amqp=amqp,
        listing=listing,
        auth_headers=auth_headers,
    )


def registry_from_settings(config: Settings | None = None) -> FormRegistry:
    """Load definitions and collaborators as configured by the environment."""
    config = config or default_settings
    renderer = Renderer()
    definitions = load_forms(config.CONFIGS)
    return build_registry(
        definitions,
        storage=storage_from_settings(config),
        renderer=renderer,
        captchas=captchas_from_settings(config),
        xsrf=config.xsrf_enabled,
        listing=config.listing_enabled,
        auth_headers=config.AUTH_HEADERS,
        webhooks_buffer=config.WEBHOOKS_BUFFER,
        amqp_url=config.AMQP_URL.strip(),
        amqp_buffer=config.AMQP_BUFFER,
    )
