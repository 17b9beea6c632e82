from __future__ import annotations

from unittest import mock

from legal_billables.document import Document, Node


class FakeTime:
    """Manually advanced millisecond clock shared by loop and sessions."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class ComposeWindow:
    def __init__(self, document: Document, recipients: tuple[str, ...] = ()):
        self.body = Node("div", {"contenteditable": "true", "role": "textbox"})
        self.subject = Node("input", {"name": "subjectbox"})
        self.to_field = Node("div", {"role": "presentation"})
        for email in recipients:
            self.to_field.append_child(Node("span", {"email": email}))
        self.send = Node("div", {"role": "button", "data-tooltip": "Send ‪(Ctrl+Enter)‬"})
        self.surface = Node(
            "div",
            {"role": "dialog"},
            children=[self.to_field, self.subject, self.body, self.send],
        )
        self.document = document
        document.body.append_child(self.surface)

    def add_recipient(self, email: str) -> None:
        self.to_field.append_child(Node("span", {"email": email}))


def response(status_code: int = 200, payload: object = None, text: str = "") -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status_code
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


def backend_session(*responses: mock.Mock) -> mock.Mock:
    session = mock.Mock()
    session.request.side_effect = list(responses)
    return session
