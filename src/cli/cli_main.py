import json
from datetime import timedelta
from typing import Optional

import click

from src.cli.tools.role_seed import seed_entry
from src.utils.config_service import load_auth_config
from src.utils.logging import get_logger, setup_cli_logging
from src.utils.postgres_service_factory import PostgresServiceFactory
from src.utils.rbac.jwt_parser import TokenFailure, create_access_token, decode_jwt_claims, verify_token


@click.group()
def cli():
    pass


@click.command(name='init-db')
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def init_db(verbosity: int):
    """Create the users and roles tables if they do not exist."""
    setup_cli_logging(verbosity=verbosity)
    with PostgresServiceFactory.from_env() as factory:
        factory.user_service.ensure_schema()
        factory.role_service.ensure_schema()
    click.echo("Schema ready")


@click.command(name='seed-roles')
@click.option('--config', '-c', 'config_path', type=str, help="Path to auth .yaml configuration")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def seed_roles(config_path: Optional[str], verbosity: int):
    """Upsert the system roles (from config, or the built-in defaults)."""
    setup_cli_logging(verbosity=verbosity)
    count = seed_entry(config_path)
    click.echo(f"Seeded {count} roles")


@click.command(name='issue-token')
@click.option('--user-id', '-u', type=str, required=True, help="Id of the user the token is for")
@click.option('--minutes', '-m', type=int, default=None, help="Token lifetime (defaults to configured lifetime)")
@click.option('--config', '-c', 'config_path', type=str, help="Path to auth .yaml configuration")
def issue_token(user_id: str, minutes: Optional[int], config_path: Optional[str]):
    """Print a signed access token for a user."""
    setup_cli_logging(verbosity=2)
    settings = load_auth_config(config_path)
    if not settings.jwt_secret:
        raise click.ClickException("JWT_SECRET is not set; cannot sign tokens.")
    if minutes is not None and minutes < 1:
        raise click.ClickException("--minutes must be at least 1")

    lifetime = timedelta(minutes=minutes or settings.access_token_expires_minutes)
    click.echo(create_access_token(user_id, settings.jwt_secret, expires_in=lifetime,
                                   algorithm=settings.jwt_algorithm))


@click.command(name='inspect-token')
@click.argument('token')
@click.option('--config', '-c', 'config_path', type=str, help="Path to auth .yaml configuration")
def inspect_token(token: str, config_path: Optional[str]):
    """Show a token's claims and whether it verifies with the configured secret."""
    setup_cli_logging(verbosity=2)
    settings = load_auth_config(config_path)
    result = verify_token(token, settings.jwt_secret, settings.jwt_algorithm)

    click.echo(json.dumps(decode_jwt_claims(token), indent=2, default=str))
    if isinstance(result, TokenFailure):
        click.echo(f"Verification failed: {result.code.value} ({result.message})")
    else:
        click.echo(f"Valid token for user {result.user_id}, expires {result.expires_at.isoformat()}")


@click.command()
@click.option('--host', type=str, default='0.0.0.0', help="Interface to bind")
@click.option('--port', type=int, default=5000, help="Port to listen on")
@click.option('--config', '-c', 'config_path', type=str, help="Path to auth .yaml configuration")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def serve(host: str, port: int, config_path: Optional[str], verbosity: int):
    """Run the auth API with the Flask development server."""
    from src.interfaces.auth_api.app import create_app

    setup_cli_logging(verbosity=verbosity)
    logger = get_logger(__name__)
    logger.info(f"Starting auth API on {host}:{port}")
    app = create_app(settings=load_auth_config(config_path))
    app.run(host=host, port=port)


def main():
    """
    Entrypoint for shopkeeper-auth cli tool implemented using Click.
    """
    cli.add_command(init_db)
    cli.add_command(seed_roles)
    cli.add_command(issue_token)
    cli.add_command(inspect_token)
    cli.add_command(serve)
    cli()


if __name__ == "__main__":
    main()
