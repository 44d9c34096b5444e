# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: D415
"""Commands for the PlatformIO Home server."""

from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.console import Console

from pioassist.core import PlatformIOCore
from pioassist.exceptions import ServerStartError
from pioassist.home import HomeServer

from ._context import CLIContext
from ._shared import ExitCode, exit_with_error

app = App(name="home", help="Manage the PlatformIO Home server", help_on_error=True)


def _create_server(ctx: CLIContext) -> HomeServer:
    return HomeServer(
        settings=ctx.config.home,
        core=PlatformIOCore(caller=ctx.config.core.caller),
        logger=ctx.log,
    )


@app.command(name="start")
def _start(
    *,
    host: Annotated[str | None, Parameter(help="Host to bind")] = None,
    port: Annotated[
        int | None, Parameter(help="Port to use instead of scanning the port range")
    ] = None,
    theme: Annotated[str | None, Parameter(help="Dashboard theme")] = None,
) -> None:
    """Start PlatformIO Home and keep it running until interrupted

    Args:
        host: Host to bind
        port: Port to use instead of scanning the port range
        theme: Dashboard theme
    """
    ctx = CLIContext.get_current()
    console = Console()

    async def run() -> None:
        async with _create_server(ctx) as home:
            await home.ensure_started(host=host, port=port)
            console.print(f"[green]PlatformIO Home[/green] {home.frontend_url(theme=theme)}")
            console.print("[dim]Press Ctrl+C to stop[/dim]")
            await anyio.sleep_forever()

    try:
        anyio.run(run)
    except ServerStartError as e:
        exit_with_error(str(e), ExitCode.IO_ERROR)
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")


@app.command(name="stop")
def _stop(
    port: int,
    /,
    *,
    host: Annotated[str | None, Parameter(help="Host the server listens on")] = None,
) -> None:
    """Ask the PlatformIO Home server on a port to shut down

    Args:
        port: Port of the server
        host: Host the server listens on
    """
    ctx = CLIContext.get_current()
    settings = ctx.config.home
    if host is not None:
        settings = settings.model_copy(update={"host": host})

    async def run() -> None:
        async with HomeServer(settings=settings, logger=ctx.log) as home:
            await home.request_shutdown(port)

    anyio.run(run)
    Console().print(f"Shutdown requested on port {port}")


@app.command(name="shutdown-all")
def _shutdown_all() -> None:
    """Ask every PlatformIO Home server in the port range to shut down"""
    ctx = CLIContext.get_current()

    async def run() -> None:
        async with _create_server(ctx) as home:
            await home.shutdown_all_servers()

    anyio.run(run)
    settings = ctx.config.home
    Console().print(
        f"Shutdown requested on ports {settings.port_begin}-{settings.port_end - 1}"
    )

