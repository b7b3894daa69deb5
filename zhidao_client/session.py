"""Streaming session for one question at a time.

A ``StreamSession`` owns at most one live ``StreamConnection``. The network is
read on a daemon worker thread; every chunk is framed and dispatched while the
session lock is held, so handlers never interleave and a cancelled or
superseded connection can no longer touch the state.
"""

import logging
import threading
from typing import Callable, Iterator, List, Optional
from urllib.parse import quote

import httpx

from .classifier import EventClassifier
from .config import ClientConfig
from .errors import (
    DecodeError,
    InvalidInputError,
    ServerReportedError,
    StreamConnectionError,
    UnexpectedDisconnectError,
    ZhiDaoError,
)
from .framing import SSEFrameBuffer, decode_frame
from .messages import Messages
from .notifications import RequestTracker
from .state import QueryState, QueryStateSnapshot

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0


class StreamConnection:
    """Handle for one streaming request and its delivery callbacks.

    The callbacks are bound to this connection: once it is cancelled,
    superseded by a newer request or closed, they do nothing.
    """

    def __init__(self, session: "StreamSession", query: str, request_id: Optional[str] = None):
        self.session = session
        self.query = query
        self.request_id = request_id
        self.cancelled = threading.Event()
        self.closed = False
        self.response: Optional[httpx.Response] = None
        self.thread: Optional[threading.Thread] = None

    def on_bytes_received(self, chunk: bytes):
        self.session._deliver(self, chunk)

    def on_completed(self, error: Optional[Exception] = None):
        self.session._complete(self, error)

    def close_transport(self):
        """Close the HTTP response, interrupting a blocked read."""
        response = self.response
        if response is None:
            return
        try:
            response.close()
        except (httpx.HTTPError, OSError, RuntimeError, ValueError) as e:
            logger.debug(f"Error closing stream for '{self.query}': {e}")


class StreamSession:
    """Streams answers from ``/stream-question`` into a QueryState.

    Args:
        config: Client configuration (base URL, timeout, locale)
        state: State to update; a fresh QueryState when omitted
        client: httpx client to use. When omitted the session creates and owns one.
        tracker: Optional request tracker notified when a query completes
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        state: Optional[QueryState] = None,
        client: Optional[httpx.Client] = None,
        tracker: Optional[RequestTracker] = None,
    ):
        self.config = config or ClientConfig()
        self.state = state or QueryState()
        self.messages = Messages(self.config.locale)
        self.classifier = EventClassifier(self.messages)
        self.tracker = tracker
        self.last_error: Optional[ZhiDaoError] = None
        self._client = client
        self._owns_client = client is None
        self._lock = threading.RLock()
        self._buffer = SSEFrameBuffer()
        self._connection: Optional[StreamConnection] = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client used for streaming."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.config.timeout, connect=CONNECT_TIMEOUT),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    # -- observable surface ------------------------------------------------

    @property
    def connection(self) -> Optional[StreamConnection]:
        return self._connection

    def snapshot(self) -> QueryStateSnapshot:
        return self.state.snapshot()

    def subscribe(self, listener: Callable[[QueryStateSnapshot], None]) -> Callable[[], None]:
        return self.state.subscribe(listener)

    # -- commands ----------------------------------------------------------

    def begin(self, query: str) -> StreamConnection:
        """Prepare a new query without opening the network stream.

        Any previous connection is cancelled and dropped, and the state and
        frame buffer are reset in one step. The caller feeds the returned
        connection's callbacks itself.

        Raises:
            InvalidInputError: If the query is empty or whitespace-only
        """
        if not query or not query.strip():
            raise InvalidInputError("query cannot be empty")
        query = query.strip()

        with self._lock:
            previous = self._retire()
            with self.state.transaction():
                self.state.reset()
                self._buffer.clear()
                self.state.update(is_streaming=True, status_message=self.messages.get("connecting"))
            self.last_error = None
            request_id = self.tracker.track(query) if self.tracker else None
            self._connection = StreamConnection(self, query, request_id)
            connection = self._connection

        if previous is not None:
            previous.close_transport()
        return connection

    def start(self, query: str) -> StreamConnection:
        """Start streaming the answer to ``query``. Returns immediately.

        Raises:
            InvalidInputError: If the query is empty or whitespace-only
        """
        connection = self.begin(query)
        client = self._get_client()
        thread = threading.Thread(
            target=self._pump,
            args=(connection, client),
            name="zhidao-stream",
            daemon=True,
        )
        connection.thread = thread
        logger.info(f"Starting stream for query: {connection.query}")
        thread.start()
        return connection

    def cancel(self):
        """Stop the active request. Safe to call at any time; never sets an error."""
        with self._lock:
            connection = self._connection
            if connection is None or connection.closed or connection.cancelled.is_set():
                return
            connection.cancelled.set()
            if self.tracker and connection.request_id:
                self.tracker.stop_tracking(connection.request_id)
            self.state.update(is_streaming=False, status_message=self.messages.get("cancelled"))
        logger.info(f"Cancelled stream for query: {connection.query}")
        connection.close_transport()

    def reset(self):
        """Cancel any request and return the state to its defaults."""
        with self._lock:
            previous = self._retire()
            with self.state.transaction():
                self.state.reset()
                self._buffer.clear()
            self.last_error = None
        if previous is not None:
            previous.close_transport()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread of the current connection.

        Returns:
            True if no worker is running any more
        """
        connection = self._connection
        if connection is None or connection.thread is None:
            return True
        connection.thread.join(timeout)
        return not connection.thread.is_alive()

    def close(self):
        """Cancel any request and release the owned httpx client."""
        self.cancel()
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # -- delivery ----------------------------------------------------------

    def on_bytes_received(self, chunk: bytes):
        """Feed a chunk to the active connection, if there is one."""
        connection = self._connection
        if connection is not None:
            connection.on_bytes_received(chunk)

    def on_completed(self, error: Optional[Exception] = None):
        """Report the end of the active connection's transport."""
        connection = self._connection
        if connection is not None:
            connection.on_completed(error)

    def _retire(self) -> Optional[StreamConnection]:
        connection = self._connection
        self._connection = None
        if connection is None:
            return None
        if not connection.closed and not connection.cancelled.is_set():
            connection.cancelled.set()
            if self.tracker and connection.request_id:
                self.tracker.stop_tracking(connection.request_id)
        return connection

    def _is_live(self, connection: StreamConnection) -> bool:
        return (
            connection is self._connection
            and not connection.closed
            and not connection.cancelled.is_set()
        )

    def _deliver(self, connection: StreamConnection, chunk: bytes):
        completed_request: Optional[str] = None
        with self._lock:
            if not self._is_live(connection):
                logger.debug("Dropping chunk for an inactive connection")
                return
            frames = self._buffer.feed(chunk)

            with self.state.transaction():
                for payload in self._payloads(frames):
                    if not self._is_live(connection):
                        break
                    try:
                        event = self.classifier.classify(payload, self.state)
                    except DecodeError as e:
                        self._report_decode_error(e)
                        continue
                    if event.status == "error" and self.state.error is not None:
                        self.last_error = ServerReportedError(self.state.error)
                        if self.tracker and connection.request_id:
                            self.tracker.stop_tracking(connection.request_id)
                    elif event.status == "complete" and connection.request_id:
                        completed_request = connection.request_id

        if completed_request is not None and self.tracker:
            self.tracker.complete(completed_request)

    def _payloads(self, frames: List[bytes]) -> Iterator[str]:
        """Decode frames lazily so a cancel mid-chunk stops further decoding."""
        for frame in frames:
            try:
                payloads = decode_frame(frame)
            except DecodeError as e:
                self._report_decode_error(e)
                continue
            yield from payloads

    def _report_decode_error(self, error: DecodeError):
        logger.warning(f"Skipping malformed event: {error}")
        self.state.record_decode_error(self.messages.get("parse_error"))

    def _complete(self, connection: StreamConnection, error: Optional[Exception]):
        with self._lock:
            if not self._is_live(connection):
                return
            connection.closed = True
            state = self.state

            with state.transaction():
                if error is not None:
                    if state.is_complete:
                        logger.info(f"Ignoring transport error after completion: {error}")
                    elif state.error is None:
                        logger.error(f"Stream failed: {error}")
                        message = self.messages.get("connection_error", message=str(error))
                        state.fail(message, self.messages.get("error", message=message))
                        self.last_error = (
                            error if isinstance(error, StreamConnectionError)
                            else StreamConnectionError(str(error))
                        )
                elif not state.is_complete and state.error is None:
                    message = self.messages.get("unexpected_disconnect")
                    logger.error(message)
                    state.fail(message, self.messages.get("error", message=message))
                    self.last_error = UnexpectedDisconnectError(message)
                state.update(is_streaming=False)

            if self.tracker and connection.request_id and not state.is_complete:
                self.tracker.stop_tracking(connection.request_id)

    def _pump(self, connection: StreamConnection, client: httpx.Client):
        """Worker thread body: read the response and feed the connection."""
        url = f"{self.config.stream_url}?query={quote(connection.query, safe='')}"
        error: Optional[Exception] = None
        try:
            with client.stream("GET", url, headers={"Accept": "text/event-stream"}) as response:
                connection.response = response
                if connection.cancelled.is_set():
                    return
                if response.status_code != 200:
                    raise StreamConnectionError(
                        self.messages.get("server_status_error", code=response.status_code)
                    )
                for chunk in response.iter_bytes():
                    if connection.cancelled.is_set():
                        break
                    connection.on_bytes_received(chunk)
        except StreamConnectionError as e:
            error = e
        except httpx.TimeoutException as e:
            error = StreamConnectionError(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            error = StreamConnectionError(str(e) or type(e).__name__)
        except Exception as e:
            if not connection.cancelled.is_set():
                logger.exception(f"Unexpected error while streaming '{connection.query}'")
            error = StreamConnectionError(str(e) or type(e).__name__)

        connection.on_completed(error)
