# wisdom/http/response.py

from http import HTTPStatus

CONTENT_TYPE = "text/plain; charset=utf-8"

ERROR_BODY = b"500 Internal Server Error\n"


def build_response(body: bytes, status: int = 200, content_type: str = CONTENT_TYPE) -> bytes:
    """
    Frame a body as a complete HTTP/1.1 response.

    Content-Length is always the exact byte length of `body`. The connection
    is never kept alive, so every response says so.

    Args:
        body: Response body bytes (sent verbatim)
        status: HTTP status code
        content_type: Value of the Content-Type header

    Returns:
        Status line, headers, blank line and body as one bytes object
    """
    reason = HTTPStatus(status).phrase
    head = (
        f"HTTP/1.1 {status} {reason}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


def build_error_response() -> bytes:
    """Generic 500 response; never carries failure details."""
    return build_response(ERROR_BODY, status=500)
