import click

from uhdbridge.server import kill_bridge_servers, list_running_servers, start_server
from uhdbridge.types import DeviceError
from uhdbridge.util import (
    create_default_config_file,
    default_config_path,
    format_error_response,
    load_settings,
    resolve_log_level,
)


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


@click.group()
@tree_option
def cli():
    """uhdbridge - SCPI/TCP bridge for UHD software-defined radio receivers.

    - Control plane: SCPI text commands (default port 5025)

    - Data plane: length-prefixed complex64 sample blocks (default port 5026)
    """
    pass


@cli.command()
@click.option(
    "--device",
    "-d",
    default=None,
    help='Capture source: UHD device args (e.g. "addr=192.168.10.2") or "mock"',
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Settings file (default: ~/.uhdbridge/bridge.ini)",
)
@click.option(
    "--host-address",
    "-ha",
    default=None,
    help="Network address to bind to (default: 0.0.0.0)",
)
@click.option(
    "--scpi-port",
    "-sp",
    default=None,
    type=int,
    help="Port for SCPI control connections (default: 5025)",
)
@click.option(
    "--waveform-port",
    "-wp",
    default=None,
    type=int,
    help="Port for waveform data connections (default: 5026)",
)
@click.option(
    "--capture-timeout",
    default=None,
    type=float,
    help="Timeout of one receive call in seconds (default: 3.0)",
)
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=True,
    help="Enable/disable console logging (default: enabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.uhdbridge/server.log)",
)
@click.option(
    "--clear-prev-log/--no-clear-prev-log",
    "-c/",
    default=True,
    help="Clear previous log file on startup (default: enabled)",
)
@click.option(
    "--log-level",
    "-ll",
    default=None,
    help="Logging level (TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR) (default: INFO)",
)
@click.option("--debug", is_flag=True, default=False, help="Same as --log-level DEBUG")
@click.option("--verbose", is_flag=True, default=False, help="Same as --log-level INFO")
@click.option(
    "--quiet",
    "-q",
    count=True,
    help="Log less; repeat to log even less",
)
@click.pass_context
def server(ctx, **kwargs):
    """Start a bridge server.

    Opens the capture source, then serves one client at a time:

    - SCPI commands on the control port

    - Captured sample blocks on the waveform port

    Settings come from the command line, then the settings file, then the
    built-in defaults.
    """
    try:
        settings = load_settings(kwargs["config_path"])
    except (FileNotFoundError, ValueError):
        raise click.UsageError(f"Could not load settings: {format_error_response()}")

    settings = settings.with_overrides(
        device=kwargs["device"],
        host=kwargs["host_address"],
        scpi_port=kwargs["scpi_port"],
        waveform_port=kwargs["waveform_port"],
        capture_timeout=kwargs["capture_timeout"],
        log_level=kwargs["log_level"],
    )
    if not settings.device:
        click.echo("Error: no capture device given (--device or settings file)\n", err=True)
        click.echo(ctx.get_help())
        ctx.exit(1)

    try:
        log_level = resolve_log_level(
            settings.log_level, kwargs["debug"], kwargs["verbose"], kwargs["quiet"]
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--log-level")

    try:
        start_server(
            settings,
            log_to_file=kwargs["log_to_file"],
            log_to_stdout=kwargs["log_to_stdout"],
            log_path=kwargs["log_path"],
            clear_prev_log=kwargs["clear_prev_log"],
            log_level=log_level,
        )
    except DeviceError as e:
        raise click.ClickException(f"Could not open capture source: {e}")


@cli.command()
def list():
    """List all running bridge servers.

    Displays information about each running server instance:

    - Process ID (PID)

    - Running status

    - Start time

    - Network configuration (host and ports)

    - Capture device
    """
    servers = list_running_servers()

    click.echo("\nRunning uhdbridge servers:")
    click.echo("--------------------------")

    if not servers:
        click.echo("No servers found")
        click.echo("")
        return

    for server in servers:
        status = "(RUNNING)" if server.get("running", False) else "(NOT RUNNING)"
        click.echo(f"\nPID: {server['pid']} {status}")
        click.echo(f"Started: {server['timestamp']}")
        click.echo(f"Host: {server['host']}")
        click.echo(
            f"Ports: scpi={server['ports']['scpi']}, "
            f"waveform={server['ports']['waveform']}"
        )
        click.echo(f"Device: {server.get('device', '')}")
    click.echo("")


@cli.command()
def kill():
    """Kill all running bridge servers.

    Forcefully terminates all registered server processes. Useful for
    cleaning up orphaned processes or resolving port conflicts.
    """
    killed = kill_bridge_servers()
    if killed:
        click.echo(f"Killed {killed} uhdbridge server(s)")
    else:
        click.echo("No running uhdbridge servers found")
    click.echo("")


@cli.group()
@tree_option
def config():
    """Manage the settings file."""
    pass


@config.command()
@click.option(
    "--path",
    type=click.Path(dir_okay=False),
    default=None,
    help="File to write (default: ~/.uhdbridge/bridge.ini)",
)
def init(path):
    """Create a settings file with the defaults, keeping existing values."""
    written = create_default_config_file(path)
    click.echo(f"Wrote settings file {written}")


@config.command()
@click.option(
    "--path",
    type=click.Path(dir_okay=False),
    default=None,
    help="File to read (default: ~/.uhdbridge/bridge.ini)",
)
def show(path):
    """Show the settings a server would start with."""
    try:
        settings = load_settings(path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"\nSettings ({path or default_config_path()}):")
    click.echo("--------------------------")
    for key, value in settings.to_dict().items():
        click.echo(f"{key} = {value}")
    click.echo("")
