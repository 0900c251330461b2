"""Scripted stdio tool server for integration tests.

Usage: python fake_server.py [MODE]

normal           answer initialize, tools/list and tools/call
silent           read requests but never answer
crash            write to stderr and exit 3 immediately
noise            print a banner line that is not JSON before serving
exit-on-call     exit without answering the first tools/call

The "hang" tool is callable but never answered.
"""

import json
import sys

TOOLS = [
    {
        "name": "move_object",
        "description": "Move a scene object",
        "inputSchema": {"type": "object"},
    },
    {
        "name": "echo",
        "description": "Return the arguments as JSON text",
        "inputSchema": {"type": "object"},
    },
]


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def result(request_id, value):
    send({"jsonrpc": "2.0", "id": request_id, "result": value})


def error(request_id, code, message):
    send({"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}})


def handle_call(request_id, params):
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if name == "move_object":
        result(request_id, {"content": [{"type": "text", "text": "moved"}]})
    elif name == "echo":
        text = json.dumps(arguments, sort_keys=True)
        result(request_id, {"content": [{"type": "text", "text": text}]})
    elif name == "hang":
        return
    else:
        error(request_id, -32602, f"Unknown tool: {name}")


def main(mode):
    if mode == "crash":
        sys.stderr.write("fatal: cannot bind port 8080\n")
        sys.stderr.flush()
        sys.exit(3)

    if mode == "noise":
        sys.stdout.write("Starting unity bridge...\n")
        sys.stdout.flush()

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        message = json.loads(line)
        if "id" not in message:
            continue
        if mode == "silent":
            continue

        request_id = message["id"]
        method = message.get("method")
        if method == "initialize":
            result(
                request_id,
                {
                    "protocolVersion": message["params"]["protocolVersion"],
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": "fake-server", "version": "0.1"},
                },
            )
        elif method == "tools/list":
            result(request_id, {"tools": TOOLS})
        elif method == "tools/call":
            if mode == "exit-on-call":
                sys.stderr.write("bridge lost connection to editor\n")
                sys.exit(1)
            handle_call(request_id, message.get("params") or {})
        else:
            error(request_id, -32601, f"Method not found: {method}")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "normal")
