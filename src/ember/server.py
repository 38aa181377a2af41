"""
=============================================================================
EMBER SERVER
=============================================================================

The Ember class owns the configuration, the event registry, the data
store, the WebSocket sessions and the run loop. Everything else plugs in
through events.

=============================================================================
RUN LOOP STATE MACHINE
=============================================================================

            ignite(block=True)                     ignite(block=False)
    ┌──────┐ ───────────────────► ┌───────────┐      ┌───────────┐
    │ IDLE │                      │ BLOCKING  │      │ DAEMON    │
    │      │ ◄─────────────────── │ (looping) │      │ (thread)  │
    └──────┘  loop sees quitting  └───────────┘      └───────────┘
       ▲      or an exception           │                  │
       │                                │ extinguish()     │ extinguish()
       │                                ▼                  │
       │                      quitting = True              │
       │                      (observed at the next        │
       │                       cycle boundary)             │
       └───────────────────────────────────────────────────┘
                      stop transport, running = False, "end"

    BLOCKING CYCLE
    ──────────────
        "cycle-start"
        transport.service()         ← pending network I/O, handlers run here
        poll external events        ← trigger files, oldest first
        "cycle-end"
        quitting?  → clear it, leave the loop
        sleep(refresh_rate)

    Leaving the loop, normally or through an exception, stops the
    transport, clears running and fires "end" exactly once.

=============================================================================
EVENTS AND THEIR PAYLOADS
=============================================================================

    start, resume             {server, **ignite kwargs}
    end, cycle-start/-end     {server}
    header                    {server, id, request}
    before-request, request   {server, id, request} (+ patches for request)
    after-request             {server, id, request, response}
    before-message, message   {server, id, binary, message, request}
    after-message             {server, id, binary, message, request}
    websocket-closed          {server, id, request}
    user events               {server, **trigger() kwargs or trigger file}

Every handler is called with one dict holding these keys.

=============================================================================
"""

import inspect
import logging
import signal
import threading
import time
import warnings
import webbrowser
from typing import Any, Callable, Dict, List, Optional

from .config import ServerConfig
from .errors import ContractViolation, OperationWarning, ProtocolViolation, ValidationError
from .events import EventRegistry, Handler, is_protected
from .http.request import HTTPRequest
from .pipeline import RequestPipeline, WebSocketPipeline
from .sessions import SessionRegistry
from .transport import Transport, WebSocket
from .triggers import DirectoryEventSource, EventSource


logger = logging.getLogger(__name__)


def default_client_id(request: HTTPRequest) -> str:
    """ID_<remote address>_<remote port>"""
    return f"ID_{request.remote_addr}_{request.remote_port}"


class Ember:
    """
    An embeddable HTTP/WebSocket server driven by event handlers.

    =========================================================================
    USAGE
    =========================================================================

        app = Ember()
        app.port = 8080

        @app.handler("request")
        def hello(args):
            return ok({"path": args["request"].path})

        app.on("message", lambda args: args["server"].send(args["message"], args["id"]))

        app.ignite()               # blocks until extinguish()

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        transport: Optional[Transport] = None,
        event_source: Optional[EventSource] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults to host 0.0.0.0, port 80,
                    refresh rate 0.001s and no trigger directory.
            transport: Network collaborator. A SocketTransport is created
                       on first ignite when omitted.
            event_source: Source of external events for the blocking loop.
                          Defaults to trigger files in config.trigger_dir.
        """
        self.config = config or ServerConfig()
        self._transport = transport
        self._event_source = event_source or DirectoryEventSource(
            lambda: self.config.trigger_dir
        )

        self._registry = EventRegistry()
        self._sessions = SessionRegistry()
        self._data: Dict[str, Any] = {}
        self._client_id: Callable[[Any], str] = default_client_id

        self._running = False
        self._quitting = False
        self._daemonized = False

        self._requests = RequestPipeline(self, self._registry, self.client_id)
        self._websockets = WebSocketPipeline(self, self._registry, self._sessions, self.client_id)

    # =========================================================================
    # CONFIGURATION
    # =========================================================================
    # Thin views over self.config; ServerConfig validates on assignment.

    @property
    def host(self) -> str:
        return self.config.host

    @host.setter
    def host(self, address: str) -> None:
        self.config.host = address

    @property
    def port(self) -> int:
        return self.config.port

    @port.setter
    def port(self, n: int) -> None:
        self.config.port = n

    @property
    def refresh_rate(self) -> float:
        return self.config.refresh_rate

    @refresh_rate.setter
    def refresh_rate(self, rate: float) -> None:
        self.config.refresh_rate = rate

    @property
    def trigger_dir(self) -> Optional[str]:
        return self.config.trigger_dir

    @trigger_dir.setter
    def trigger_dir(self, directory: Optional[str]) -> None:
        self.config.trigger_dir = directory

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            from .core import SocketTransport
            self._transport = SocketTransport(self.config)
        return self._transport

    @property
    def running(self) -> bool:
        return self._running

    @property
    def clients(self) -> List[str]:
        """Client ids with an open WebSocket."""
        return self._sessions.ids()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def ignite(self, block: bool = True, showcase: bool = False, **args: Any) -> None:
        """
        Start the server.

        Args:
            block: Run the cooperative loop on this thread (True) or serve
                   from a background thread and return (False).
            showcase: Open a browser at the server address.
            **args: Passed to the "start" handlers.
        """
        self._run(block=block, showcase=showcase, resume=False, args=args)

    def start(self, block: bool = True, showcase: bool = False, **args: Any) -> None:
        """Synonym for ignite()."""
        self.ignite(block=block, showcase=showcase, **args)

    def reignite(self, block: bool = True, showcase: bool = False, **args: Any) -> None:
        """As ignite(), additionally firing "resume" after "start"."""
        self._run(block=block, showcase=showcase, resume=True, args=args)

    def resume(self, block: bool = True, showcase: bool = False, **args: Any) -> None:
        """Synonym for reignite()."""
        self.reignite(block=block, showcase=showcase, **args)

    def extinguish(self) -> None:
        """
        Stop a running server.

        A daemon stops synchronously. A blocking loop is only asked to
        quit; it finishes the current cycle, then stops the transport and
        fires "end" itself.
        """
        if not self._running:
            return
        if self._daemonized:
            logger.info("Stopping daemonized server")
            self.transport.stop_daemonized()
            self._daemonized = False
            self._running = False
            self._dispatch("end", {"server": self})
        else:
            logger.info("Shutdown requested, stopping after this cycle")
            self._quitting = True

    def stop(self) -> None:
        """Synonym for extinguish()."""
        self.extinguish()

    def _run(self, block: bool, showcase: bool, resume: bool, args: Dict[str, Any]) -> None:
        if self._running:
            warnings.warn(
                "Server is already running and cannot be started",
                OperationWarning,
                stacklevel=3,
            )
            return

        self._running = True
        try:
            self._dispatch("start", {**args, "server": self})
            if resume:
                self._dispatch("resume", {**args, "server": self})
        except BaseException:
            self._running = False
            raise

        if block:
            self._run_blocking(showcase)
        else:
            self._run_daemonized(showcase)

    def _run_blocking(self, showcase: bool) -> None:
        transport = self.transport
        logger.info(f"Igniting blocking server on {self.host}:{self.port}")
        original_handlers = self._install_signal_handlers()
        try:
            self.config.validate()
            transport.start(self.host, self.port, self)
            if showcase:
                self._open_browser()

            while True:
                self._dispatch("cycle-start", {"server": self})
                transport.service()
                self._poll_external()
                self._dispatch("cycle-end", {"server": self})
                if self._quitting:
                    self._quitting = False
                    break
                time.sleep(self.refresh_rate)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            for sig, handler in original_handlers.items():
                signal.signal(sig, handler)
            try:
                transport.stop()
            finally:
                self._quitting = False
                self._running = False
                logger.info("Server extinguished")
                self._dispatch("end", {"server": self})

    def _install_signal_handlers(self) -> Dict[int, Any]:
        """
        Turn SIGTERM into extinguish() while blocking on the main thread.

        SIGINT keeps its default and arrives as KeyboardInterrupt.
        Returns the handlers to restore.
        """
        if threading.current_thread() is not threading.main_thread():
            return {}

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, extinguishing")
            self.extinguish()

        return {signal.SIGTERM: signal.signal(signal.SIGTERM, shutdown_handler)}

    def _run_daemonized(self, showcase: bool) -> None:
        logger.info(f"Igniting daemonized server on {self.host}:{self.port}")
        try:
            self.config.validate()
            self.transport.start_daemonized(self.host, self.port, self)
        except BaseException:
            self._running = False
            raise
        self._daemonized = True
        if showcase:
            self._open_browser()

    def _poll_external(self) -> None:
        for event, args in self._event_source.poll():
            logger.info(f"External trigger: '{event}'")
            self._dispatch(event, {**args, "server": self})

    def _open_browser(self) -> None:
        host = self.host
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        port = self.port
        if self._transport is not None and self._transport.address is not None:
            port = self._transport.address[1]
        url = f"http://{host}:{port}/"
        logger.info(f"Opening {url}")
        webbrowser.open(url)

    # =========================================================================
    # HANDLERS AND EVENTS
    # =========================================================================

    def on(self, event: str, handler: Handler, pos: Optional[int] = None) -> str:
        """
        Add a handler to an event.

        Args:
            event: Event name, protected or user-defined.
            handler: Callable taking the event payload dict.
            pos: 1-based position in the event's handler stack;
                 None appends.

        Returns:
            The handler id, for off().
        """
        return self._registry.on(event, handler, pos)

    def handler(self, event: str, pos: Optional[int] = None) -> Callable[[Handler], Handler]:
        """
        Decorator form of on().

            @app.handler("request")
            def index(args):
                return ok("hi")
        """
        def decorator(func: Handler) -> Handler:
            self.on(event, func, pos)
            return func
        return decorator

    def off(self, handler_id: str) -> "Ember":
        """Remove the handler with this id. Unknown ids are ignored."""
        self._registry.off(handler_id)
        return self

    def trigger(self, event: str, **args: Any) -> "Ember":
        """
        Fire a user-defined event.

        Protected lifecycle events are refused with a ProtocolViolation
        warning and nothing is dispatched.
        """
        if is_protected(event):
            warnings.warn(
                f"{event} and other protected events cannot be triggered",
                ProtocolViolation,
                stacklevel=2,
            )
            return self
        self._dispatch(event, {**args, "server": self})
        return self

    def _dispatch(self, event: str, args: Dict[str, Any]) -> List[Any]:
        return self._registry.dispatch(event, args)

    # =========================================================================
    # PLUGINS AND DATA
    # =========================================================================

    def attach(self, plugin: Any, *args: Any, **kwargs: Any) -> "Ember":
        """
        Let a plugin register its handlers.

        Calls plugin.on_attach(self, *args, **kwargs), the snake_case form
        of the onAttach(server, ...) plugin hook. Objects without on_attach
        raise AttributeError.
        """
        plugin.on_attach(self, *args, **kwargs)
        logger.debug(f"Attached plugin {type(plugin).__name__}")
        return self

    def set_data(self, name: str, value: Any) -> "Ember":
        self._data[name] = value
        return self

    def get_data(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    # =========================================================================
    # CLIENT IDENTITY
    # =========================================================================

    def set_client_id_converter(self, converter: Callable[[Any], str]) -> "Ember":
        """
        Replace the function mapping a request to a client id.

        Raises:
            ContractViolation: If converter cannot be called with a single
                               request argument. The old converter stays.
        """
        if not callable(converter):
            raise ContractViolation(f"Client id converter must be callable, got {converter!r}")
        try:
            inspect.signature(converter).bind(None)
        except TypeError:
            raise ContractViolation("Client id converter must accept a 'request' argument")
        except ValueError:
            pass  # no introspectable signature (some builtins)
        self._client_id = converter
        return self

    def client_id(self, request: Any) -> str:
        return self._client_id(request)

    # =========================================================================
    # TRANSPORT CALLBACKS (ember.transport.Application)
    # =========================================================================

    def call(self, request: HTTPRequest) -> Any:
        return self._requests.handle(request)

    def on_headers(self, request: HTTPRequest) -> Optional[Any]:
        return self._requests.headers(request)

    def on_ws_open(self, ws: WebSocket) -> None:
        self._websockets.open(ws)

    def on_transport_failure(self, error: BaseException) -> None:
        """
        The daemon transport died on its own thread and has already
        released its socket. Marks the server stopped and fires "end".
        """
        if not (self._running and self._daemonized):
            return
        logger.error(f"Daemonized server lost its transport: {error}")
        self._daemonized = False
        self._running = False
        self._dispatch("end", {"server": self})

    # =========================================================================
    # WEBSOCKET MESSAGING
    # =========================================================================

    def send(self, message: Any, id: Optional[str] = None) -> "Ember":
        """
        Send a text or binary message over WebSocket.

        Args:
            message: A single str or bytes.
            id: Client id; None broadcasts to every open connection.

        Raises:
            ValidationError: If message is not str or bytes.
            KeyError: If id has no open WebSocket.
        """
        if not isinstance(message, (str, bytes, bytearray)):
            raise ValidationError("message", message, "must be a single string or bytes")
        if id is None:
            for client_id in self._sessions:
                ws = self._sessions.get(client_id)
                if ws is not None:
                    ws.send(message)
            return self
        ws = self._sessions.get(id)
        if ws is None:
            raise KeyError(f"No open WebSocket for client {id}")
        ws.send(message)
        return self

    def close_ws(self, id: str) -> "Ember":
        """Close a client's WebSocket and drop it from the registry."""
        ws = self._sessions.get(id)
        if ws is None:
            return self
        ws.close()
        self._sessions.discard(id, ws)
        return self

    # =========================================================================
    # RESERVED
    # =========================================================================

    def time(self, expr: Callable[[], Any], delay: float, loop: bool = False) -> None:
        raise NotImplementedError("Timed evaluation is not yet implemented")

    def delay(self, expr: Callable[[], Any], then: Callable[[Any], Any]) -> None:
        raise NotImplementedError("Delayed evaluation is not yet implemented")

    def async_(self, expr: Callable[[], Any], then: Callable[[Any], Any]) -> None:
        raise NotImplementedError("Asynchronous evaluation is not yet implemented")

    def __repr__(self) -> str:
        state = "running" if self._running else "idle"
        return f"<Ember {self.host}:{self.port} {state}, {len(self._registry)} handlers>"
