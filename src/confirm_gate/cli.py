"""
confirm-gate CLI — confirm-gate serve | prune | status
"""
import asyncio
from pathlib import Path
from typing import Any

import click

from confirm_gate.config.settings import Settings, load_settings
from confirm_gate.core.exceptions import ConfigurationError
from confirm_gate.core.structured_logger import configure_logging


def _set(target: dict[str, Any], dotted: str, value: Any) -> None:
    if value is None:
        return
    section, key = dotted.split(".")
    target.setdefault(section, {})[key] = value


def _load(config: str | None, overrides: dict[str, Any]) -> Settings:
    try:
        return load_settings(config, overrides=overrides)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(2) from e


def _prepare(settings: Settings):
    from confirm_gate.lifecycle import Runtime

    runtime = Runtime(settings)
    try:
        return runtime, runtime.prepare()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        raise SystemExit(2) from e


def _storage_options(func):
    func = click.option("--config-file", envvar="CONFIG_FILE", type=click.Path(path_type=Path),
                        help="Account config file (default <data>/config.json)")(func)
    func = click.option("--tokens-file", envvar="DATA_FILE", type=click.Path(path_type=Path),
                        help="Token store file (default <data>/tokens.json)")(func)
    func = click.option("--data", "data_dir", type=click.Path(path_type=Path),
                        help="Directory for token store and config (default ~/.confirm-gate)")(func)
    func = click.option("--config", "config", envvar="CONFIRM_GATE_CONFIG", type=click.Path(),
                        help="YAML settings file")(func)
    return func


def _storage_overrides(data_dir, tokens_file, config_file) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    _set(overrides, "storage.data_dir", data_dir)
    _set(overrides, "storage.tokens_file", tokens_file)
    _set(overrides, "storage.config_file", config_file)
    return overrides


@click.group()
@click.version_option(package_name="confirm-gate")
def cli() -> None:
    """confirm-gate — destructive action confirmation gate for AI agents."""
    pass


@cli.command()
@click.option("--port", envvar="PORT", type=int, help="Port to listen on (default 3051)")
@click.option("--host", envvar="HOST", help="Interface to bind (default 0.0.0.0)")
@click.option("--base-url", envvar="BASE_URL", help="Base URL for confirm links (default http://localhost:<port>)")
@click.option("--pin", envvar="CONFIRM_PIN", help="Require PIN to confirm (applied when no account is set up)")
@click.option("--smtp-host", envvar="SMTP_HOST", help="SMTP relay for PIN recovery e-mail")
@click.option("--smtp-port", envvar="SMTP_PORT", type=int, help="SMTP port")
@click.option("--smtp-user", envvar="SMTP_USER", help="SMTP username")
@click.option("--smtp-pass", envvar="SMTP_PASS", help="SMTP password")
@click.option("--smtp-from", envvar="SMTP_FROM", help="From address for recovery e-mail")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@_storage_options
def serve(
    port, host, base_url, pin, smtp_host, smtp_port, smtp_user, smtp_pass, smtp_from,
    log_level, config, data_dir, tokens_file, config_file,
) -> None:
    """Start the confirmation service."""
    overrides = _storage_overrides(data_dir, tokens_file, config_file)
    _set(overrides, "server.port", port)
    _set(overrides, "server.host", host)
    _set(overrides, "server.base_url", base_url)
    _set(overrides, "security.pin", pin)
    _set(overrides, "smtp.host", smtp_host)
    _set(overrides, "smtp.port", smtp_port)
    _set(overrides, "smtp.username", smtp_user)
    _set(overrides, "smtp.password", smtp_pass)
    _set(overrides, "smtp.sender", smtp_from)
    _set(overrides, "logging.level", log_level)

    settings = _load(config, overrides)
    configure_logging(settings.logging.level, settings.logging.format)

    from confirm_gate.interfaces.web.server import WebInterface
    from confirm_gate.lifecycle import ShutdownPriority

    runtime, context = _prepare(settings)
    runtime.register_shutdown_callback(
        context.store.persist, priority=ShutdownPriority.LOW, name="flush-tokens"
    )
    interface = WebInterface(context.service, settings, runtime=runtime)

    click.echo(f"confirm-gate running on :{settings.server.port} ({settings.public_base_url})")
    asyncio.run(interface.start())


@cli.command()
@_storage_options
def prune(config, data_dir, tokens_file, config_file) -> None:
    """Remove expired tokens and reset tokens once, then exit."""
    settings = _load(config, _storage_overrides(data_dir, tokens_file, config_file))
    _, context = _prepare(settings)
    removed = context.service.prune()
    click.echo(f"Pruned {removed} expired token(s); {len(context.store)} remaining.")


@cli.command()
@_storage_options
def status(config, data_dir, tokens_file, config_file) -> None:
    """Show account setup state and stored token counts."""
    settings = _load(config, _storage_overrides(data_dir, tokens_file, config_file))
    _, context = _prepare(settings)
    vault = context.vault
    click.echo(f"Tokens file:    {settings.storage.tokens_path}")
    click.echo(f"Config file:    {settings.storage.config_path}")
    click.echo(f"Setup complete: {'yes' if vault.setup_complete else 'no'}")
    click.echo(f"PIN required:   {'yes' if vault.pin_required else 'no'}")
    click.echo(f"Recovery email: {'configured' if vault.email else 'none'}")
    for state, count in context.store.count_by_status().items():
        click.echo(f"  {state:<10} {count}")


if __name__ == "__main__":
    cli()
