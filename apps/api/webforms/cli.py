"""CLI tools for serving and checking form definitions."""

import sys

import click

from webforms.core.config import settings
from webforms.core.errors import FormConfigError
from webforms.core.structured_logging import configure_logging
from webforms.services.form_loader import load_forms
from webforms.services.template_service import Renderer


@click.group()
def cli():
    """Web forms CLI tools."""
    configure_logging(settings.LOG_LEVEL)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST setting)")
@click.option("--port", default=None, type=int, help="Bind port (default: PORT setting)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development only)")
def serve(host, port, reload):
    """Serve forms over HTTP."""
    import uvicorn

    uvicorn.run(
        "webforms.main:create_app",
        factory=True,
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


@cli.command()
@click.option("--configs", default=None, help="File or directory with definitions (default: CONFIGS setting)")
def check(configs):
    """
    Load and validate form definitions.

    Policies, patterns and templates are compiled, so every error that would
    abort startup is reported here.

    Example:
        webforms check --configs ./configs
    """
    location = configs or settings.CONFIGS
    try:
        forms = load_forms(location, Renderer())
    except FormConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    for form in forms:
        click.echo(
            f"✓ {form.name}: {len(form.fields)} field(s), "
            f"{len(form.webhooks)} webhook(s), {len(form.amqp)} AMQP target(s)"
        )
    click.echo(f"→ {len(forms)} form(s) OK")


@cli.command(name="forms")
@click.option("--configs", default=None, help="File or directory with definitions (default: CONFIGS setting)")
def list_forms(configs):
    """List form names and their tables."""
    try:
        forms = load_forms(configs or settings.CONFIGS)
    except FormConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    for form in forms:
        click.echo(f"{form.name}\t{form.table}")


if __name__ == "__main__":
    cli()
