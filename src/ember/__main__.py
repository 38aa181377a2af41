"""
=============================================================================
EMBER CLI ENTRY POINT
=============================================================================

Runs a small demo application: an index page that opens a WebSocket,
JSON endpoints (GET /api/data, GET /api/broadcast?message=...) and an
echo handler for WebSocket messages.

=============================================================================
USAGE
=============================================================================

    # Blocking server on 0.0.0.0:8080
    python -m ember --port 8080

    # Open a browser tab once listening
    python -m ember --port 8080 --showcase

    # Accept trigger files (see ember.triggers)
    python -m ember --port 8080 --trigger-dir /tmp/ember-triggers

    # Log every request as JSON
    python -m ember --access-log --log-format json

=============================================================================
"""

import argparse
import sys
import threading

from . import __version__
from .config import ServerConfig
from .errors import ValidationError
from .http.response import ResponseBuilder, bad_request, not_found, ok
from .logging import setup_logging
from .plugins import AccessLogPlugin
from .server import Ember


INDEX_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Ember</title>
    <style>
        body { font-family: -apple-system, sans-serif; max-width: 720px; margin: 50px auto; }
        #log { background: #1e1e1e; color: #eee; padding: 16px; border-radius: 8px;
               font-family: monospace; min-height: 120px; white-space: pre-wrap; }
    </style>
</head>
<body>
    <h1>Ember is running</h1>
    <p>Type a message; the server echoes it back over WebSocket.</p>
    <input id="msg" placeholder="hello"> <button onclick="send()">Send</button>
    <div id="log"></div>
    <script>
        const log = document.getElementById("log");
        const ws = new WebSocket(`ws://${location.host}/`);
        ws.onmessage = (e) => { log.textContent += "← " + e.data + "\\n"; };
        function send() {
            const text = document.getElementById("msg").value;
            log.textContent += "→ " + text + "\\n";
            ws.send(text);
        }
    </script>
</body>
</html>
"""


def build_app(config: ServerConfig) -> Ember:
    """The demo application."""
    app = Ember(config)
    app.set_data("hits", 0)

    @app.handler("request")
    def route(args):
        request = args["request"]
        server = args["server"]
        server.set_data("hits", server.get_data("hits") + 1)

        if request.path == "/":
            return ResponseBuilder().html(INDEX_PAGE).build()
        if request.path == "/api/data":
            return ok({
                "client": args["id"],
                "hits": server.get_data("hits"),
                "clients": server.clients,
            })
        if request.path == "/api/broadcast":
            message = request.get_query("message")
            if not message:
                return bad_request("Missing query parameter: message")
            server.send(message)
            return ok({"sent": message, "clients": len(server.clients)})
        return not_found(f"Nothing at {request.path}")

    @app.handler("message")
    def echo(args):
        args["server"].send(args["message"], args["id"])

    return app


def main():
    parser = argparse.ArgumentParser(
        prog="python -m ember",
        description="Event-driven HTTP/WebSocket server (demo application)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ember --port 8080
  python -m ember --port 8080 --showcase
  python -m ember --trigger-dir ./triggers --log-level DEBUG
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default="0.0.0.0",
                        help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=8080,
                        help="Port to listen on (default: 8080)")

    # ─────────────────────────────────────────────────────────────────────
    # RUN LOOP
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--refresh-rate", type=float, default=0.001,
                        help="Seconds to sleep between loop cycles (default: 0.001)")
    parser.add_argument("--trigger-dir", default=None,
                        help="Directory watched for <event>.json trigger files")
    parser.add_argument("--daemon", action="store_true",
                        help="Serve from a background thread; Ctrl+C stops")
    parser.add_argument("--showcase", action="store_true",
                        help="Open the server in a web browser")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-level", "-l",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        default="INFO",
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-format", choices=["text", "json"], default="text",
                        help="Log line format (default: text)")
    parser.add_argument("--access-log", action="store_true",
                        help="Log one line per HTTP request")

    parser.add_argument("--version", "-v", action="version",
                        version=f"Ember {__version__}")

    args = parser.parse_args()

    setup_logging(args.log_level, args.log_format)

    try:
        config = ServerConfig(
            host=args.host,
            port=args.port,
            refresh_rate=args.refresh_rate,
            trigger_dir=args.trigger_dir,
            log_level=args.log_level,
            log_format=args.log_format,
        )
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    app = build_app(config)
    if args.access_log:
        app.attach(AccessLogPlugin(log_format=args.log_format))

    try:
        if args.daemon:
            app.ignite(block=False, showcase=args.showcase)
            try:
                threading.Event().wait()
            except KeyboardInterrupt:
                pass
            app.extinguish()
        else:
            app.ignite(showcase=args.showcase)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
