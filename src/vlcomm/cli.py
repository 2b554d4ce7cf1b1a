#!/usr/bin/env python3
"""Command-line interface for vlcomm using Typer."""

import json
import logging
import queue
import time
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .codec import FrameCodec
from .errors import TransportError, UnknownVariableError
from .events import QueueSubscriber
from .message import Message, ParamValue, create_command, create_json_message
from .modbus.address_map import AddressMap, default_address_map
from .modbus.server import ModbusServerConfig, ModbusTcpServer
from .registry import default_registry
from .transports import TcpClient, TcpServer, Transport, UdpClient, UdpServer
from .types import ByteOrder

app = typer.Typer(
    name="vlcomm",
    help="Framed message transports (TCP/UDP) and a Modbus-TCP register server.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Remote host or IP address", envvar="VLCOMM_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="TCP/UDP port", envvar="VLCOMM_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="VLCOMM_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Connect timeout in seconds", envvar="VLCOMM_TIMEOUT"),
]
ByteOrderOption = Annotated[
    ByteOrder,
    typer.Option("--byte-order", "-b", help="Float byte order", envvar="VLCOMM_BYTE_ORDER", case_sensitive=False),
]
MapOption = Annotated[
    Optional[Path],
    typer.Option("--map", "-m", help="Address map JSON file (entries list)", envvar="VLCOMM_ADDRESS_MAP"),
]
UdpOption = Annotated[
    bool,
    typer.Option("--udp", help="Use UDP instead of TCP"),
]
FramedOption = Annotated[
    bool,
    typer.Option("--framed", help="Wrap UDP datagrams in the STX/length/CRC/ETX envelope"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
ParamsArgument = Annotated[
    Optional[list[str]],
    typer.Argument(help="Parameters as KEY=VALUE"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "on", "yes"):
        return True
    if v in ("false", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_param_value(value: str) -> ParamValue:
    """Typed parameter value: bool words, then int (decimal or 0x hex), then float, else the text."""
    try:
        return parse_bool(value)
    except ValueError:
        pass
    v = value.strip()
    try:
        return int(v, 16) if v.lower().startswith("0x") else int(v)
    except ValueError:
        pass
    try:
        return float(v)
    except ValueError:
        return value


def parse_params(items: Optional[list[str]]) -> dict[str, ParamValue]:
    """KEY=VALUE items to a parameter dict; raises ValueError on items without '='."""
    params: dict[str, ParamValue] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {item!r}")
        params[key.strip()] = parse_param_value(value)
    return params


def build_message(command: str, params: Optional[list[str]], msg_id: Optional[str], json_body: bool) -> Message:
    parsed = parse_params(params)
    msg = create_json_message(command, parsed) if json_body else create_command(command, **parsed)
    if msg_id and not json_body:
        msg.id = msg_id
    return msg


def format_value(value: Any) -> str:
    """Format value for display."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def message_to_dict(msg: Message) -> dict[str, Any]:
    return {
        "type": msg.type.value,
        "command": msg.command,
        "id": msg.id,
        "timestamp": msg.timestamp.isoformat(timespec="milliseconds"),
        "parameters": msg.parameters,
    }


def echo_message(msg: Message, json_output: bool, source: Optional[str] = None) -> None:
    if json_output:
        data = message_to_dict(msg)
        if source:
            data["source"] = source
        typer.echo(json.dumps(data))
        return
    prefix = f"{source} " if source else ""
    params = " ".join(f"{k}={format_value(v) if v is not None else ''}" for k, v in msg.parameters.items())
    typer.echo(f"{prefix}{msg}" + (f" | {params}" if params else ""))


def load_address_map(path: Optional[Path]) -> AddressMap:
    """Address map from a JSON file, or the default template when path is None."""
    if path is None:
        return default_address_map()
    if not path.is_file():
        typer.echo(f"Error: Address map file not found: {path}", err=True)
        raise typer.Exit(2)
    try:
        return AddressMap.from_json_file(path)
    except (ValueError, TypeError) as e:
        typer.echo(f"Error: Invalid address map {path}: {e}", err=True)
        raise typer.Exit(2)


def fail_unexpected(e: Exception, verbose: bool) -> None:
    typer.echo(f"Error: Unexpected error: {e}", err=True)
    if verbose:
        import traceback
        traceback.print_exc()
    raise typer.Exit(4)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def info(
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show package version and the registered transport kinds.
    """
    setup_logging(verbose)

    info_data = {
        "version": __version__,
        "transports": default_registry().kinds(),
        "byte_orders": [order.value for order in ByteOrder],
    }

    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"vlcomm version: {info_data['version']}")
        typer.echo(f"Transports: {', '.join(info_data['transports'])}")
        typer.echo(f"Byte orders: {', '.join(info_data['byte_orders'])}")


@app.command()
def encode(
    command: Annotated[str, typer.Argument(help="Command name (e.g., START, SET_EXPOSURE)")],
    params: ParamsArgument = None,
    msg_id: Annotated[Optional[str], typer.Option("--id", help="Message id (default: random 8 hex chars)")] = None,
    json_body: Annotated[bool, typer.Option("--json-body", help="Encode the body as a JSON envelope")] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Encode a message into a frame and print it as hex.

    Example: vlcomm encode SET_EXPOSURE value=1500 --id 0a1b2c3d
    """
    setup_logging(verbose)

    try:
        msg = build_message(command, params, msg_id, json_body)
    except ValueError as e:
        typer.echo(f"Error: Invalid parameter: {e}", err=True)
        raise typer.Exit(2)
    typer.echo(FrameCodec().encode(msg).hex())


@app.command()
def decode(
    frame_hex: Annotated[str, typer.Argument(help="Frame bytes as hex (spaces and dashes allowed)")],
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Decode one or more frames from hex and print the messages.

    Exits with 1 when no complete, valid frame is found.
    """
    setup_logging(verbose)

    try:
        data = bytes.fromhex(frame_hex.replace("-", " ").replace(":", " "))
    except ValueError as e:
        typer.echo(f"Error: Invalid hex: {e}", err=True)
        raise typer.Exit(2)

    messages = FrameCodec().decode(data)
    if not messages:
        typer.echo("No valid frame found", err=True)
        raise typer.Exit(1)
    for msg in messages:
        echo_message(msg, json_output)


@app.command()
def send(
    command: Annotated[str, typer.Argument(help="Command name")],
    params: ParamsArgument = None,
    host: HostOption = None,
    port: PortOption = 8080,
    timeout: TimeoutOption = 5.0,
    udp: UdpOption = False,
    framed: FramedOption = False,
    json_body: Annotated[bool, typer.Option("--json-body", help="Send the body as a JSON envelope")] = False,
    wait: Annotated[float, typer.Option("--wait", "-w", help="Seconds to wait for replies")] = 0.0,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Send one message to a TCP (or UDP) peer and optionally print replies.
    """
    setup_logging(verbose)

    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    try:
        msg = build_message(command, params, None, json_body)
    except ValueError as e:
        typer.echo(f"Error: Invalid parameter: {e}", err=True)
        raise typer.Exit(2)

    transport: Transport
    if udp:
        transport = UdpClient(host, port, framed=framed)
    else:
        transport = TcpClient(host, port, connect_timeout=timeout)

    try:
        with QueueSubscriber[Message](transport.message_received) as replies:
            if not transport.open():
                raise TransportError(f"Cannot open connection to {host}:{port}", endpoint=f"{host}:{port}")
            try:
                if not transport.send(msg):
                    raise TransportError(f"Send to {host}:{port} failed", endpoint=f"{host}:{port}")
                typer.echo(f"OK: Sent {msg.command} (ID:{msg.id}) to {host}:{port}")
                deadline = time.monotonic() + wait
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    try:
                        echo_message(replies.get(timeout=remaining), json_output)
                    except queue.Empty:
                        break
            finally:
                transport.close()
    except TransportError as e:
        typer.echo(f"Error: Connection error: {e}", err=True)
        raise typer.Exit(3)
    except typer.Exit:
        raise
    except Exception as e:
        fail_unexpected(e, verbose)


@app.command()
def listen(
    port: PortOption = 8080,
    udp: UdpOption = False,
    framed: FramedOption = False,
    count: Annotated[int, typer.Option("--count", "-n", help="Stop after N messages (0: run until Ctrl+C)")] = 0,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Run a TCP (or UDP) server and print every received message.

    Press Ctrl+C to stop.
    """
    setup_logging(verbose)

    if count < 0:
        typer.echo(f"Error: Count must not be negative, got {count}", err=True)
        raise typer.Exit(2)

    server: TcpServer | UdpServer = UdpServer(port, framed=framed) if udp else TcpServer(port)
    try:
        with QueueSubscriber[tuple[str, Message]](server.client_message_received) as inbox:
            if not server.open():
                raise TransportError(f"Cannot listen on port {port}", endpoint=f"0.0.0.0:{port}")
            try:
                typer.echo(f"Listening on {'UDP' if udp else 'TCP'} port {port} (Ctrl+C to stop)", err=True)
                received = 0
                while count == 0 or received < count:
                    try:
                        source, msg = inbox.get(timeout=0.5)
                    except queue.Empty:
                        continue
                    echo_message(msg, json_output, source)
                    received += 1
            finally:
                server.close()
    except TransportError as e:
        typer.echo(f"Error: Connection error: {e}", err=True)
        raise typer.Exit(3)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except typer.Exit:
        raise
    except Exception as e:
        fail_unexpected(e, verbose)


@app.command(name="map-template")
def map_template(
    json_output: JsonOption = False,
) -> None:
    """
    Print the default address map (system status, commands, temperature and set point).
    """
    amap = default_address_map()
    if json_output:
        typer.echo(json.dumps({"name": amap.name, "items": amap.to_entries()}, indent=2))
        return
    typer.echo(amap.name)
    for item in amap:
        typer.echo(
            f"  {item.name:<16} {item.function_area.label:<17} {item.address:>5}  "
            f"{item.display_address}  {item.data_type.value:<8} {item.default_value}"
        )


@app.command(name="map-validate")
def map_validate(
    path: Annotated[Path, typer.Argument(help="Address map JSON file")],
    verbose: VerboseOption = False,
) -> None:
    """
    Validate an address map: names, addresses, area/type combinations and overlaps.

    Exits with 1 when errors are found.
    """
    setup_logging(verbose)

    amap = load_address_map(path)
    errors = amap.validate()
    if errors:
        for error in errors:
            typer.echo(error)
        typer.echo(f"{len(errors)} error(s) in {path}", err=True)
        raise typer.Exit(1)
    typer.echo(f"OK: {len(amap.enabled_items())} enabled variable(s), no errors")


@app.command(name="map-explain")
def map_explain(
    name: Annotated[str, typer.Argument(help="Variable name (case-insensitive)")],
    map_path: MapOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show area, address, display address, length and data type of a variable.

    Does not require a connection; uses the default template unless --map is given.
    """
    setup_logging(verbose)

    amap = load_address_map(map_path)
    try:
        item = amap.lookup(name)
    except UnknownVariableError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    info = {
        "name": item.name,
        "area": item.function_area.label,
        "address": item.address,
        "wire_address": item.address - 1,
        "display_address": item.display_address,
        "length": item.length,
        "data_type": item.data_type.value,
        "default_value": item.default_value,
        "description": item.description,
    }
    if json_output:
        typer.echo(json.dumps(info, indent=2))
    else:
        typer.echo(f"Variable:        {info['name']}")
        typer.echo(f"Area:            {info['area']}")
        typer.echo(f"Address:         {info['address']} (wire {info['wire_address']})")
        typer.echo(f"Display address: {info['display_address']}")
        typer.echo(f"Length:          {info['length']}")
        typer.echo(f"Data type:       {info['data_type']}")


@app.command(name="modbus-serve")
def modbus_serve(
    host: HostOption = "127.0.0.1",
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    byte_order: ByteOrderOption = ByteOrder.ABCD,
    map_path: MapOption = None,
    max_clients: Annotated[int, typer.Option("--max-clients", help="Maximum simultaneous Modbus clients")] = 10,
    verbose: VerboseOption = False,
) -> None:
    """
    Run the Modbus-TCP register server until Ctrl+C.

    Requests are logged at INFO; use --verbose to see them.
    """
    setup_logging(verbose)

    if unit_id == 0:
        typer.echo("Error: Unit ID cannot be 0", err=True)
        raise typer.Exit(2)
    if max_clients <= 0:
        typer.echo(f"Error: Max clients must be positive, got {max_clients}", err=True)
        raise typer.Exit(2)

    amap = load_address_map(map_path)
    config = ModbusServerConfig(unit_id=unit_id, max_clients=max_clients, byte_order=byte_order)
    server = ModbusTcpServer(host or "127.0.0.1", port, config, amap)
    try:
        if not server.open():
            raise TransportError(f"Cannot listen on {host}:{port}", endpoint=f"{host}:{port}")
        try:
            typer.echo(server.server_status(), err=True)
            while server.is_connected:
                time.sleep(0.5)
        finally:
            server.close()
    except TransportError as e:
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        raise typer.Exit(3)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except typer.Exit:
        raise
    except Exception as e:
        fail_unexpected(e, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"vlcomm {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """vlcomm - framed messaging transports and Modbus-TCP register server."""
    pass


if __name__ == "__main__":
    app()
