import click


@click.group()
def main() -> None:
    """LeaveNow - tells you whether to leave now for your next calendar event."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from LEAVENOW_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from LEAVENOW_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the agent together with the operator API."""
    import uvicorn

    from leavenow.agent.settings import LeaveNowSettings

    settings = LeaveNowSettings()

    uvicorn.run(
        "leavenow.agent.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
def run() -> None:
    """Run the agent headless, without the operator API."""
    import asyncio

    from leavenow.agent.log import setup_logging
    from leavenow.agent.settings import LeaveNowSettings

    settings = LeaveNowSettings()
    setup_logging(settings.log_level, settings.device_id, secrets=[settings.client_secret.get_secret_value()])
    if not settings.redis_url:
        msg = "LEAVENOW_REDIS_URL must be set to run the agent"
        raise click.UsageError(msg)

    asyncio.run(_run_headless(settings))


async def _run_headless(settings) -> None:
    import redis.asyncio as aioredis

    from leavenow.agent.orchestrator import Orchestrator
    from leavenow.agent.relay.redis import RedisRelay
    from leavenow.agent.store.local import LocalTokenStore

    client = aioredis.from_url(settings.redis_url, decode_responses=False, socket_connect_timeout=5)
    relay = RedisRelay(client, settings.device_id, prefix=settings.relay_prefix)
    orchestrator = Orchestrator.from_settings(settings, relay, LocalTokenStore(settings.data_root))
    try:
        await orchestrator.run(settings.tick_interval)
    finally:
        await relay.close()
        await client.aclose()


@main.command()
@click.option("--start", "start", required=True, help="Event start time (RFC3339).")
@click.option("--eta", type=int, required=True, help="Travel time in seconds.")
@click.option("--now", "now", default=None, help="Current time (RFC3339, default: now).")
@click.option("--epsilon", type=int, default=0, show_default=True, help="Leave-now tolerance in seconds.")
def decide(start: str, eta: int, now: str | None, epsilon: int) -> None:
    """Evaluate the departure decision offline."""
    from leavenow.agent.decision import decide as _decide
    from leavenow.agent.notifier import announcement_for, render
    from leavenow.agent.timeutil import parse_rfc3339, utcnow

    try:
        event_start = parse_rfc3339(start)
        current = parse_rfc3339(now) if now else utcnow()
        decision = _decide(current, event_start, eta, epsilon)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from None

    message, duration = announcement_for(decision)
    click.echo(f"{decision.verdict} {decision.seconds}")
    click.echo(render(message, duration))


# ---------------------------------------------------------------------------
# Token management
# ---------------------------------------------------------------------------


def _token_store():
    from leavenow.agent.settings import LeaveNowSettings
    from leavenow.agent.store.local import LocalTokenStore

    return LocalTokenStore(LeaveNowSettings().data_root)


@main.group()
def token() -> None:
    """Inspect or erase the stored OAuth2 refresh token."""


@token.command()
def show() -> None:
    """Show whether a refresh token is stored (masked)."""
    import asyncio

    store = _token_store()
    stored = asyncio.run(store.read())
    if stored is None:
        click.echo(f"No refresh token stored ({store.path}).")
        return
    value = stored.refresh_token
    masked = value[:4] + "..." + value[-4:] if len(value) > 12 else "***"
    when = stored.stored_at.isoformat() if stored.stored_at else "unknown time"
    click.echo(f"Refresh token {masked} stored at {when} ({store.path}).")


@token.command()
@click.confirmation_option(prompt="Erase the stored token? The device will need to be authorized again.")
def erase() -> None:
    """Erase the stored refresh token."""
    import asyncio

    store = _token_store()
    asyncio.run(store.erase())
    click.echo("Refresh token erased.")


if __name__ == "__main__":
    main()
