"""
RPC client and server for Python classes based on ZeroMQ and MessagePack.

unionmount uses RPC to keep its privileged surface small. The reconciliation loop runs
as the invoking user, and only the mount service (bind, union, unmount) runs as root in
a helper process. The daemon calls that helper through this module.

The implementation is minimal:

* Calls are made from a single thread, one at a time, over a REQUEST/REPLY socket pair.
* Dataclasses used in method signatures are serialized automatically based on type
  annotations, so results like CommandResult cross the process boundary intact.
* Builtin exceptions are recreated faithfully on the client side, so an OSError raised
  by the helper is still an OSError for the caller.
* Every call carries a shared secret token that the helper generated at startup and
  handed to the daemon over its stdout, since the endpoint is a local TCP port that any
  user on the machine could connect to.
"""

from abc import ABC
import builtins
from dataclasses import is_dataclass
from enum import auto, Enum
import logging
import threading
import time
import typing
from typing import Any, Callable, Dict, List, Optional, Tuple

import msgpack
import zmq

from unionmount.logger import log, summarize

# Milliseconds between checks of stop events while waiting on a socket
_POLL_INTERVAL_MS = 100


class Encoding:
    """Serialization and deserialization of objects using MessagePack."""

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """Register all dataclass types used within the specified type."""
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def pack(self, obj: Any) -> bytes:
        return msgpack.packb(obj, default=self.serialize_obj)

    def unpack(self, data: bytes) -> Any:
        return msgpack.unpackb(data, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn a dataclass or exception into a serializable representation."""
        if isinstance(obj, BaseException):
            return {
                "__exception__": {"name": obj.__class__.__qualname__, "args": obj.args}
            }
        elif obj.__class__.__qualname__ in self._dataclasses:
            return {
                "__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}
            }
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct a dataclass or exception from a serialized representation."""
        if isinstance(obj, dict) and "__exception__" in obj:
            return self._deserialize_exception(obj)
        elif isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    @staticmethod
    def _deserialize_exception(obj: Dict) -> BaseException:
        """
        Reconstruct an exception from its serialized representation.

        Builtin exceptions (like OSError) are recreated as such, anything else becomes a
        RuntimeError with the original arguments.
        """
        name = obj["__exception__"]["name"]
        args = obj["__exception__"]["args"]

        builtin_exc = getattr(builtins, name, None)

        if isinstance(builtin_exc, type) and issubclass(builtin_exc, Exception):
            return builtin_exc(*args)
        else:
            return RuntimeError(*args)

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """Reconstruct a previously registered dataclass from its representation."""
        type_name = obj["__data__"]["type"]
        type_data = obj["__data__"]["data"]

        if type_name not in self._dataclasses:
            raise TypeError(f"unknown dataclass '{type_name}'")

        try:
            return self._dataclasses[type_name](**type_data)
        except Exception as e:
            raise TypeError(f"failed to deserialize {type_name}: {e}")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """Find the dataclasses among the given types and the types nested in them."""
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while len(candidates) > 0:
            candidate = candidates.pop()

            if candidate in explored:
                continue

            explored.add(candidate)

            if is_dataclass(candidate):
                dataclasses.add(candidate)

                for subtype in typing.get_type_hints(candidate).values():
                    candidates.add(subtype)
            elif hasattr(candidate, "__args__"):
                # Types nested in constructs like Optional[T] and List[T]
                for subtype in getattr(candidate, "__args__"):
                    candidates.add(subtype)

        return list(dataclasses)


class ReturnType(Enum):
    """Type of result for an RPC call."""

    NORMAL = auto()
    EXCEPTION = auto()
    TOKEN_ERROR = auto()


class InvalidTokenError(RuntimeError):
    """Exception raised when an RPC call is made with a wrong authentication token."""


class Base(ABC):
    """Shared logic between RPC client and server implementation."""

    def __init__(self, service_type: type):
        """Initialize RPC (de)serialization to support the specified service class."""
        self._encoding = Encoding(*self._discover_function_types(service_type))

    @staticmethod
    def _exposed_functions(service_type: type) -> Dict[str, Callable[..., Any]]:
        """Return the public methods of the service class by name."""
        return {
            name: getattr(service_type, name)
            for name in dir(service_type)
            if not name.startswith("_") and callable(getattr(service_type, name))
        }

    @classmethod
    def _discover_function_types(cls, service_type: type) -> List[type]:
        """Discover all types used as parameters or return values in the RPC service."""
        function_types: List[type] = []

        for func in cls._exposed_functions(service_type).values():
            function_types += typing.get_type_hints(func).values()

        return function_types


class Server(Base):
    """
    RPC server to expose the public methods of a class instance.

    Example:
    ```
    class Foo:
        def bar(self, a, b):
            return a + b

    server = rpc.Server(Foo(), token)
    server.serve("tcp://127.0.0.1:1234")
    ```
    """

    def __init__(self, service: Any, token: Optional[str] = None):
        """
        Instantiate an RPC server for the given service class instance.

        If a token is specified then clients need to be initialized with that same token
        to be allowed to make calls. Methods starting with an underscore are not
        exposed.
        """
        super().__init__(service.__class__)

        self.context = zmq.Context()

        self.service = service
        self.token = token

        self._functions = self._exposed_functions(service.__class__)

    def serve(self, endpoint: str, stop: Optional[threading.Event] = None) -> None:
        """
        Start listening and handling calls on the specified endpoint.

        The endpoint should have the format of endpoint in zmq_bind, for example
        "tcp://127.0.0.1:1234". Calls are handled until the stop event is set, or
        forever if there is none.
        """
        socket = self.context.socket(zmq.REP)
        socket.bind(endpoint)

        poller = zmq.Poller()
        poller.register(socket, zmq.POLLIN)

        try:
            while stop is None or not stop.is_set():
                if len(poller.poll(timeout=_POLL_INTERVAL_MS)) > 0:
                    socket.send(self._handle(socket.recv()))
        finally:
            socket.close(linger=0)

    def _handle(self, request: bytes) -> bytes:
        """Invoke the requested method and serialize its return value or exception."""
        try:
            token, function, *args = self._encoding.unpack(request)
        except Exception as e:
            return self._encoding.pack((ReturnType.EXCEPTION.value, ValueError(str(e))))

        if token != self.token:
            log.warning("rejected rpc call with invalid token")
            return self._encoding.pack((ReturnType.TOKEN_ERROR.value, None))

        try:
            if function is None:
                ret = None
            elif function in self._functions:
                ret = getattr(self.service, function)(*args)
            else:
                raise AttributeError(f"no such function '{function}'")

            return self._encoding.pack((ReturnType.NORMAL.value, ret))
        except Exception as e:
            return self._encoding.pack((ReturnType.EXCEPTION.value, e))


class Client(Base):
    """
    RPC client to invoke methods on a service instance exposed by an RPC server.

    Example:
    ```
    foo = rpc.Client(Foo, "tcp://127.0.0.1:1234", token)
    c = foo.bar(1, 2)
    ```
    """

    def __init__(
        self,
        service_type: type,
        endpoint: str,
        token: Optional[str] = None,
        timeout_ms: int = -1,
        stop: Optional[threading.Event] = None,
    ) -> None:
        """
        Instantiate an RPC client for the service type at the given endpoint.

        A timeout of -1 waits indefinitely for calls to return. A call that is waiting
        for its reply fails with an IOError as soon as the stop event is set, which is
        how callers give up on a server that has gone away.
        """
        super().__init__(service_type)

        self.endpoint = endpoint
        self.token = token
        self.timeout_ms = timeout_ms
        self.stop = stop

        self.context = zmq.Context()
        self._sock: Optional[zmq.Socket] = None

    def _socket(self) -> zmq.Socket:
        """
        Return the socket for calls, creating it if needed.

        A REQ socket is stuck after a send without a reply, so after a timeout the
        socket is discarded and a fresh one is created for the next call.
        """
        if self._sock is None:
            self._sock = self.context.socket(zmq.REQ)
            self._sock.setsockopt(zmq.LINGER, 0)
            self._sock.connect(self.endpoint)

        return self._sock

    def _discard_socket(self) -> None:
        if self._sock is not None:
            self._sock.close(linger=0)
            self._sock = None

    def ping(self, timeout_ms: Optional[int] = None) -> None:
        """Check if the service is available, optionally with a different timeout."""
        self._call(None, (), self.timeout_ms if timeout_ms is None else timeout_ms)

    def close(self) -> None:
        """Close the client socket and its ZeroMQ context."""
        self._discard_socket()
        self.context.destroy(linger=0)

    def _wait_for_reply(self, sock: zmq.Socket, timeout_ms: int) -> None:
        """Wait in short intervals for a reply, giving up on timeout or when stopped."""
        t_deadline = None if timeout_ms < 0 else time.monotonic() + timeout_ms / 1000

        while True:
            if self.stop is not None and self.stop.is_set():
                raise IOError("rpc call interrupted")

            interval_ms = _POLL_INTERVAL_MS

            if t_deadline is not None:
                remaining_ms = round((t_deadline - time.monotonic()) * 1000)

                if remaining_ms <= 0:
                    raise IOError("rpc call timed out")

                interval_ms = min(interval_ms, remaining_ms)

            if sock.poll(interval_ms, zmq.POLLIN) != 0:
                return

    def _call(self, name: Optional[str], args: Tuple[Any, ...], timeout_ms: int) -> Any:
        """
        Serialize the arguments, make the call and deserialize the result.

        ZeroMQ connections are stateless so the token is sent again with every call.
        """
        sock = self._socket()

        t_call = time.time()

        sock.send(self._encoding.pack((self.token, name, *args)))

        try:
            self._wait_for_reply(sock, timeout_ms)
        except IOError:
            self._discard_socket()
            raise

        try:
            typ, *ret = self._encoding.unpack(sock.recv())
        except zmq.ZMQError as e:
            self._discard_socket()
            raise IOError(f"rpc call failed: {e}")

        # Explicit check before logging because summarizing arguments is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((time.time() - t_call) * 1000)
            summary = tuple(summarize(arg) for arg in args)
            log.debug(f"rpc::{name}{summary} - {t_millis} ms")

        if typ == ReturnType.NORMAL.value:
            return ret[0]
        elif typ == ReturnType.EXCEPTION.value:
            raise ret[0]
        elif typ == ReturnType.TOKEN_ERROR.value:
            raise InvalidTokenError("token mismatch between client and server")
        else:
            raise ValueError(f"unexpected return type {typ}")

    def __getattr__(self, name: str) -> Callable[..., Any]:
        """Retrieve a wrapper to call the specified remote function."""
        if name.startswith("_"):
            raise AttributeError(name)

        def fn(*args: Any) -> Any:
            return self._call(name, args, self.timeout_ms)

        return fn
