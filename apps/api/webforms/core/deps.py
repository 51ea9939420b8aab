"""FastAPI dependencies."""

from fastapi import Depends, HTTPException, Request

from webforms.schemas.forms import Credentials
from webforms.core.security import credentials_from_request
from webforms.services.form_registry import FormRegistry


def get_registry(request: Request) -> FormRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Forms are not loaded")
    return registry


def get_credentials(
    request: Request,
    registry: FormRegistry = Depends(get_registry),
) -> Credentials | None:
    """Caller identity from proxy headers, when trusted."""
    return credentials_from_request(request, trust_headers=registry.auth_headers)
