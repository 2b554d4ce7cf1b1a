#!/usr/bin/env python3
"""Example: serve the default address map over Modbus TCP and read it back with the client transport."""

import sys

from vlcomm import ModbusTcpClientTransport, ModbusTcpServer
from vlcomm.errors import ModbusIOError


def main() -> None:
    port = 5020  # 502 needs root on most systems

    server = ModbusTcpServer("127.0.0.1", port)
    server.log_received.subscribe(print)
    if not server.open():
        print(f"Cannot listen on port {port}", file=sys.stderr)
        sys.exit(1)

    try:
        print(server.server_status())
        # Variables use 1-based addresses; wire address = address - 1
        server.write_value_by_name("SetPoint", 65.5)

        with ModbusTcpClientTransport("127.0.0.1", port) as client:
            print(f"SetPoint = {client.read_float(0)}")
            print(f"Temperature = {client.read_float(0, input_registers=True)}")
            client.write_coil(0, True)
            print(f"StartCommand = {server.read_value_by_name('StartCommand')}")
    except ModbusIOError as e:
        print(f"Modbus/connection error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        server.close()


if __name__ == "__main__":
    main()
