import re
from datetime import datetime, timezone

# SSE treats CRLF, CR and LF alike as line terminators
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()

# Server -> client SSE frames are built as strings
def format_event(message: str) -> str:
    """
    Frame one message as a single SSE event.

    Every line of the message becomes its own ``data:`` field so the client
    joins them back with ``\\n``; a one-line message is exactly
    ``data: <message>\\n\\n``.
    """
    lines = _LINE_BREAK.split(message)
    return "".join(f"data: {line}\n" for line in lines) + "\n"

def format_comment(text: str) -> str:
    return f": {text}\n\n"
