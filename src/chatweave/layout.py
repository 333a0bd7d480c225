"""Layout builders for the chat UI."""

from abc import ABC, abstractmethod
from typing import List, Sequence

import dash_bootstrap_components as dbc
from dash import dcc, html
from dash.development.base_component import Component as DashComponent

from .export import ExportFormat
from .models import Message

REQUIRED_COMPONENT_IDS = {
    "poll_interval",
    "state_version",
    "messages_container",
    "conversations_list",
    "new_conversation_button",
    "model_select",
    "input_textarea",
    "submit_button",
    "stop_button",
    "file_upload",
    "attachments_list",
    "export_format",
    "export_button",
    "export_download",
    "error_modal",
    "error_modal_body",
}


class Layout(ABC):
    """Interface for building the Dash component layout."""

    @abstractmethod
    def build_layout(self, poll_interval_ms: int, models: Sequence[str] = ()) -> DashComponent:
        """Constructs and returns the entire Dash component tree for the UI."""
        pass

    @abstractmethod
    def build_messages(self, messages: List[Message], prepend_buffer: str = "") -> List[DashComponent]:
        """Converts the message list into renderable components."""
        pass

    def get_external_stylesheets(self) -> List:
        return []

    def get_external_scripts(self) -> List:
        return []


class Bootstrap(Layout):
    """The default layout, built with dash-bootstrap-components."""

    def get_external_stylesheets(self) -> List:
        return [dbc.themes.BOOTSTRAP, dbc.icons.BOOTSTRAP]

    def build_layout(self, poll_interval_ms: int = 250, models: Sequence[str] = ()) -> DashComponent:
        return html.Div(
            className="d-flex flex-column vh-100",
            children=[
                dcc.Interval(id="poll_interval", interval=poll_interval_ms),
                dcc.Store(id="state_version", data=0),
                dcc.Download(id="export_download"),
                self.build_header(models),
                html.Div(
                    className="d-flex flex-grow-1",
                    style={"overflow": "hidden"},
                    children=[self.build_sidebar(), self.build_chat_area()],
                ),
                self.build_input_area(),
                dbc.Modal(
                    id="error_modal",
                    is_open=False,
                    children=[
                        dbc.ModalHeader(dbc.ModalTitle("Failed to generate completion!")),
                        dbc.ModalBody(html.Pre(id="error_modal_body")),
                    ],
                ),
            ],
        )

    def build_header(self, models: Sequence[str] = ()) -> DashComponent:
        return html.Header(
            className="p-2 bg-light border-bottom d-flex align-items-center gap-2",
            children=[
                html.H4("Chatweave", className="m-0 me-auto"),
                dcc.Dropdown(
                    id="model_select",
                    options=[{"label": m.replace("-", " "), "value": m} for m in models],
                    value=models[0] if models else None,
                    clearable=False,
                    style={"width": "14rem"},
                ),
                dcc.Dropdown(
                    id="export_format",
                    options=[{"label": f.name.title(), "value": f.value} for f in ExportFormat],
                    value=ExportFormat.PLAINTEXT.value,
                    clearable=False,
                    style={"width": "10rem"},
                ),
                dbc.Button("Export", id="export_button", color="secondary", size="sm"),
            ],
        )

    def build_sidebar(self) -> DashComponent:
        return html.Aside(
            className="p-2 border-end",
            style={"width": "16rem", "overflowY": "auto"},
            children=[
                dbc.Button(
                    "New Chat",
                    id="new_conversation_button",
                    color="primary",
                    className="w-100 mb-2",
                ),
                dbc.ListGroup(id="conversations_list", children=[]),
            ],
        )

    def build_chat_area(self) -> DashComponent:
        return html.Main(
            id="messages_container",
            className="flex-grow-1 p-3",
            style={"overflowY": "auto"},
        )

    def build_input_area(self) -> DashComponent:
        return html.Footer(
            className="p-3 bg-light border-top",
            children=[
                html.Div(id="attachments_list", className="small text-muted mb-1"),
                dbc.InputGroup(
                    [
                        dcc.Upload(
                            dbc.Button("➕", color="light"),
                            id="file_upload",
                            multiple=True,
                        ),
                        dbc.Textarea(id="input_textarea", placeholder="Ask me anything…"),
                        dbc.Button("Send", id="submit_button", color="primary"),
                        dbc.Button("Stop", id="stop_button", color="danger", disabled=True),
                    ]
                ),
            ],
        )

    def build_messages(self, messages: List[Message], prepend_buffer: str = "") -> List[DashComponent]:
        return [
            self.build_message(i, message, prepend_buffer)
            for i, message in enumerate(messages)
        ]

    def build_message(self, idx: int, message: Message, prepend_buffer: str = "") -> DashComponent:
        style = {
            "padding": "10px",
            "borderRadius": "15px",
            "marginBottom": "10px",
            "maxWidth": "70%",
            "width": "fit-content",
        }
        if message.is_user:
            style["marginLeft"] = "auto"
            style["backgroundColor"] = "#dcf8c6"
        else:
            style["marginRight"] = "auto"
            style["border"] = "1px solid #eee"

        if message.is_thought:
            summary = "Thinking…" if message.is_generating else "Thoughts"
            return html.Details(
                [html.Summary(summary), dcc.Markdown(message.content)],
                style=style,
            )

        children = []
        if message.is_error:
            children.append(html.Pre(message.content, className="text-danger"))
            children.append(
                dbc.Button(
                    "Retry",
                    id={"type": "retry_button", "index": idx},
                    size="sm",
                    color="warning",
                    title="Try to generate a response again. Make sure you have a valid API Key.",
                )
            )
        elif message.is_prepending:
            children.append(self.build_prepend_editor(idx, prepend_buffer))
        elif message.is_generating and not message.content:
            children.append(dbc.Spinner(size="sm"))
        else:
            children.append(dcc.Markdown(message.content))

        if message.files:
            children.append(
                html.Div(
                    [html.Span(f"📎 {path.name}", className="me-2") for path in message.files],
                    className="small text-muted",
                )
            )

        if not message.is_generating and not message.is_error and not message.is_prepending:
            if not message.is_user:
                children.append(
                    dbc.Button(
                        "🔄",
                        id={"type": "regenerate_button", "index": idx},
                        size="sm",
                        color="link",
                        title="Regenerate",
                    )
                )
            children.append(
                dbc.Button(
                    "🗑",
                    id={"type": "delete_button", "index": idx},
                    size="sm",
                    color="link",
                    title="Delete message",
                )
            )
        return html.Div(children, style=style)

    def build_prepend_editor(self, idx: int, prepend_buffer: str) -> DashComponent:
        return html.Div(
            [
                dbc.Textarea(
                    id={"type": "prepend_input", "index": idx},
                    value=prepend_buffer,
                    placeholder="Prepend text to response…",
                ),
                dbc.ButtonGroup(
                    [
                        dbc.Button(
                            "🔄 Regenerate",
                            id={"type": "prepend_regenerate", "index": idx},
                            size="sm",
                            title="Generate the response again, the LLM will start after any prepended text",
                        ),
                        dbc.Button(
                            "✏ Edit",
                            id={"type": "prepend_edit", "index": idx},
                            size="sm",
                            title="Edit the message in the context, but don't regenerate it",
                        ),
                        dbc.Button(
                            "❌ Cancel",
                            id={"type": "prepend_cancel", "index": idx},
                            size="sm",
                        ),
                    ],
                    className="mt-1",
                ),
            ]
        )
