"""API routers."""

from webforms.routers.forms import router as forms_router
