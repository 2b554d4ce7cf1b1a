#!/usr/bin/env python3
"""Example: TCP server that answers every command with a RESPONSE_OK; a client sends one PING."""

import sys
import time

from vlcomm import TcpClient, TcpServer, create_command, create_response
from vlcomm.events import QueueSubscriber


def main() -> None:
    port = 8080

    server = TcpServer(port, host="127.0.0.1")

    def reply(client_id: str, msg) -> None:
        print(f"server <- {client_id}: {msg}")
        server.send_to_client(client_id, create_response(msg.id, f"echo {msg.command}"))

    server.client_message_received.subscribe(reply)
    if not server.open():
        print(f"Cannot listen on port {port}", file=sys.stderr)
        sys.exit(1)

    try:
        with TcpClient("127.0.0.1", port) as client:
            replies = QueueSubscriber(client.message_received)
            client.send(create_command("PING", seq=1))
            answer = replies.get(timeout=5)
            print(f"client <- {answer} result={answer.get_str('result')}")
            time.sleep(0.1)
    finally:
        server.close()


if __name__ == "__main__":
    main()
