"""Test doubles and small builders shared across test modules."""

import json
from types import SimpleNamespace


OWNER = "owner-1"


class FakeChatModel:
    """Stands in for a LangChain chat model.

    Each call pops the next scripted item: a string or dict becomes the
    response content, an exception is raised, a callable is called with the
    messages. ``calls`` records the messages of every call.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if not self.responses:
            raise AssertionError("FakeChatModel ran out of scripted responses")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(messages)
        if isinstance(item, dict):
            item = json.dumps(item)
        return SimpleNamespace(content=item)


class HTTPError(Exception):
    """Minimal provider error carrying an HTTP status."""

    def __init__(self, status_code, message="error"):
        super().__init__(f"{status_code} {message}")
        self.status_code = status_code


def update_entry(meeting_id, text, date="2024-01-01"):
    return {"meetingId": meeting_id, "update": text, "date": date}
