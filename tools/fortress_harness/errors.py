"""
Fortress Harness - Error taxonomy

Only ConnectError crosses a public boundary (ClientSession.connect). The other
classes are raised and recovered inside the component that owns the failure.
"""

from typing import Optional


class HarnessError(Exception):
    """Base class for every harness error"""


class ProbeUnreachable(HarnessError):
    """A single endpoint did not answer; the caller moves to the next candidate"""

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"{url} unreachable" + (f": {detail}" if detail else ""))


class RegistrationFailed(HarnessError):
    """Every registration endpoint failed; recovered with a fallback id"""


class SocketConnectFailed(HarnessError):
    """One WebSocket candidate failed to open before its timeout"""

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"WebSocket {url} failed" + (f": {detail}" if detail else ""))


class MalformedInboundMessage(HarnessError):
    """An inbound frame could not be decoded; it is logged and discarded"""

    def __init__(self, detail: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(detail)


class ConnectError(HarnessError):
    """
    A session exhausted a whole candidate list.

    reason is "unreachable" when no REST health endpoint answered and
    "socket_unreachable" when no WebSocket candidate opened.
    """

    UNREACHABLE = "unreachable"
    SOCKET_UNREACHABLE = "socket_unreachable"

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(message or reason)
