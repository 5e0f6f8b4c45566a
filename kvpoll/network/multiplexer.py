"""
Readiness Multiplexer Module

This module wraps the operating system's readiness notification facility
(epoll, kqueue, poll or select, whichever selectors.DefaultSelector picks)
behind a token-based interface.

Every registered socket is bound to a Token. poll() blocks the calling
thread until at least one registered socket is ready and reports which
tokens are readable or writable. The server never looks at file
descriptors directly; tokens are the only handle it dispatches on.

    ┌──────────────┐  register(sock, token, interest)  ┌──────────────┐
    │  Dispatch    │ ─────────────────────────────────►│  Multiplexer │
    │  Loop        │ ◄─────────────────────────────────│  (selector)  │
    └──────────────┘   poll() -> [ReadinessEvent...]   └──────────────┘

The selector is level-triggered: a socket with unread input, or a
writable socket registered for WRITABLE, is reported on every poll().
Callers should only ask for WRITABLE while they have output pending.
"""

import logging
import selectors
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class MultiplexerError(Exception):
    """Base class for registration table errors."""


class RegistrationError(MultiplexerError):
    """A token is already bound, or the resource cannot be registered."""


class NotRegisteredError(MultiplexerError):
    """The token is not bound to any resource."""


class Interest(IntFlag):
    """Readiness conditions a resource can be registered for."""
    READABLE = selectors.EVENT_READ
    WRITABLE = selectors.EVENT_WRITE


class TokenKind(Enum):
    LISTENER = "listener"
    CLIENT = "client"


@dataclass(frozen=True)
class Token:
    """
    Opaque identifier of a registered resource.

    Tokens form a closed set: the single LISTENER token, and CLIENT tokens
    carrying a numeric id. Client ids start at 1; id 0 belongs to the
    listener.
    """
    kind: TokenKind
    id: int = 0

    @classmethod
    def client(cls, client_id: int) -> "Token":
        if client_id <= 0:
            raise ValueError("client ids start at 1")
        return cls(TokenKind.CLIENT, client_id)

    @property
    def is_listener(self) -> bool:
        return self.kind is TokenKind.LISTENER

    def __str__(self) -> str:
        if self.is_listener:
            return "listener"
        return f"client-{self.id}"


Token.LISTENER = Token(TokenKind.LISTENER, 0)


@dataclass(frozen=True)
class ReadinessEvent:
    """One token's readiness, as reported by a single poll()."""
    token: Token
    readable: bool = False
    writable: bool = False


class Multiplexer:
    """
    Token-based registration table on top of a selector.

    Usage:
        mux = Multiplexer()
        mux.register(listener, Token.LISTENER, Interest.READABLE)
        for event in mux.poll(timeout=1.0):
            ...
        mux.close()

    Only one thread may call poll(). register(), modify() and deregister()
    are called from that same thread between polls.
    """

    def __init__(self):
        # Fatal if this fails: the server cannot run without a selector
        self._selector = selectors.DefaultSelector()
        self._resources: Dict[Token, object] = {}

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, token: Token) -> bool:
        return token in self._resources

    def tokens(self) -> set:
        """Tokens currently bound to a resource."""
        return set(self._resources)

    def register(self, resource, token: Token, interest: Interest) -> None:
        """
        Bind a resource to a token.

        Args:
            resource: A socket (anything with fileno())
            token: Token the resource will be reported under
            interest: Readiness conditions to watch

        Raises:
            RegistrationError: If the token is already bound, the resource
                is already registered, or the resource is invalid
        """
        if token in self._resources:
            raise RegistrationError(f"token {token} is already registered")
        if not interest:
            raise RegistrationError("interest set must not be empty")

        try:
            self._selector.register(resource, int(interest), data=token)
        except KeyError as exc:
            raise RegistrationError(f"resource for {token} is already registered") from exc
        except (ValueError, OSError) as exc:
            raise RegistrationError(f"cannot register {token}: {exc}") from exc

        self._resources[token] = resource
        logger.debug(f"Registered {token} for {interest!r}")

    def modify(self, token: Token, interest: Interest) -> None:
        """
        Change the interest set of a bound token.

        Raises:
            NotRegisteredError: If the token is unknown
            RegistrationError: If the new interest set is empty
        """
        resource = self._resources.get(token)
        if resource is None:
            raise NotRegisteredError(f"token {token} is not registered")
        if not interest:
            raise RegistrationError("interest set must not be empty")

        self._selector.modify(resource, int(interest), data=token)

    def deregister(self, token: Token):
        """
        Unbind a token and return its resource.

        This must be the last multiplexer operation on the resource before
        it is closed: the operating system may hand the same descriptor to
        the next accepted socket.

        Raises:
            NotRegisteredError: If the token is unknown
        """
        resource = self._resources.pop(token, None)
        if resource is None:
            raise NotRegisteredError(f"token {token} is not registered")

        try:
            self._selector.unregister(resource)
        except (KeyError, ValueError) as exc:
            raise NotRegisteredError(f"token {token} was not known to the selector") from exc

        logger.debug(f"Deregistered {token}")
        return resource

    def poll(self, timeout: Optional[float] = None) -> List[ReadinessEvent]:
        """
        Block until at least one resource is ready or the timeout expires.

        Args:
            timeout: Seconds to wait; None blocks indefinitely

        Returns:
            One ReadinessEvent per ready token, empty on timeout
        """
        ready = self._selector.select(timeout)
        return [
            ReadinessEvent(
                token=key.data,
                readable=bool(mask & selectors.EVENT_READ),
                writable=bool(mask & selectors.EVENT_WRITE),
            )
            for key, mask in ready
        ]

    def close(self) -> None:
        """Release the selector. Registered resources are not closed."""
        self._resources.clear()
        self._selector.close()
