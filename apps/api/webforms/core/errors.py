"""Exception hierarchy for form loading, submission and notification."""


class WebFormsError(Exception):
    """Base error for the web forms service."""


class FormConfigError(WebFormsError):
    """Form definitions could not be loaded. Raised at startup, never per request."""


class TemplateError(WebFormsError):
    """Template source could not be compiled."""


class TemplateRenderError(WebFormsError):
    """Compiled template failed against a render context."""


class PolicyEvaluationError(WebFormsError):
    """Access policy expression failed to evaluate."""


class StorageError(WebFormsError):
    """Submission could not be persisted."""


class NotificationError(WebFormsError):
    """Notification could not be rendered or enqueued for one target."""
