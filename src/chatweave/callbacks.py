"""Callbacks wiring the chat state to the Dash UI.

Every callback that touches chat state holds ``app.lock``: Dash may serve
callbacks from several threads, but the message lists belong to a single
logical foreground. The ``poll_interval`` tick is the UI tick that drains the
background completions.
"""

import base64
import logging
import uuid

from dash import ALL, Input, Output, State, callback_context, dcc, html, no_update

from .export import ExportFormat, export_messages

logger = logging.getLogger(__name__)


def _clicked() -> bool:
    """Whether the trigger was a real click rather than a component being created."""
    return bool(callback_context.triggered and callback_context.triggered[0]["value"])


def register_callbacks(app):
    @app.callback(
        [
            Output("state_version", "data", allow_duplicate=True),
            Output("input_textarea", "value"),
        ],
        [Input("submit_button", "n_clicks")],
        [State("input_textarea", "value"), State("state_version", "data")],
        prevent_initial_call=True,
    )
    def send_message(n_clicks, user_input, version):
        if not n_clicks:
            return no_update, no_update

        with app.lock:
            chat = app.sessions.selected
            if chat.is_generating:
                return no_update, no_update
            chat.chatbox = user_input or ""
            if not chat.chatbox.strip() and not chat.files:
                return no_update, no_update
            chat.send_message()

        return (version or 0) + 1, ""

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input("stop_button", "n_clicks")],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def stop_generating(n_clicks, version):
        if not n_clicks:
            return no_update
        with app.lock:
            app.sessions.selected.stop()
        return (version or 0) + 1

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input("file_upload", "contents")],
        [State("file_upload", "filename"), State("state_version", "data")],
        prevent_initial_call=True,
    )
    def attach_files(contents, filenames, version):
        if not contents:
            return no_update

        upload_dir = app.settings.upload_dir
        upload_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for content, filename in zip(contents, filenames):
            _, encoded = content.split(",", 1)
            path = upload_dir / f"{uuid.uuid4().hex[:8]}_{filename}"
            path.write_bytes(base64.b64decode(encoded))
            paths.append(path)

        logger.info("selected %d file(s)", len(paths))
        with app.lock:
            app.sessions.selected.files.extend(paths)
        return (version or 0) + 1

    @app.callback(
        [
            Output("messages_container", "children"),
            Output("conversations_list", "children"),
            Output("attachments_list", "children"),
            Output("submit_button", "disabled"),
            Output("stop_button", "disabled"),
            Output("error_modal", "is_open"),
            Output("error_modal_body", "children"),
            Output("model_select", "value"),
        ],
        [Input("poll_interval", "n_intervals"), Input("state_version", "data")],
    )
    def render(n_intervals, version):
        with app.lock:
            polled = app.sessions.poll_all()
            if callback_context.triggered_id == "poll_interval" and not polled:
                return (no_update,) * 8

            chat = app.sessions.selected
            alerts, chat.alerts = chat.alerts, []
            messages = app.layout_builder.build_messages(chat.messages, chat.prepend_buffer)
            conversations = build_conversation_list(app)
            attachments = [html.Span(f"📎 {path.name}", className="me-2") for path in chat.files]
            generating = chat.is_generating
            model = chat.model

        return (
            messages,
            conversations,
            attachments,
            generating,
            not generating,
            bool(alerts),
            "\n\n".join(alerts) if alerts else no_update,
            model,
        )

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input({"type": "retry_button", "index": ALL}, "n_clicks")],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def retry(n_clicks, version):
        if not _clicked():
            return no_update
        idx = callback_context.triggered_id["index"]
        with app.lock:
            chat = app.sessions.selected
            if chat.is_generating:
                return no_update
            chat.retry(idx)
        return (version or 0) + 1

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input({"type": "regenerate_button", "index": ALL}, "n_clicks")],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def open_prepend(n_clicks, version):
        if not _clicked():
            return no_update
        idx = callback_context.triggered_id["index"]
        with app.lock:
            app.sessions.selected.start_prepend(idx)
        return (version or 0) + 1

    @app.callback(
        Input({"type": "prepend_input", "index": ALL}, "value"),
        prevent_initial_call=True,
    )
    def update_prepend_buffer(values):
        if not values:
            return
        with app.lock:
            app.sessions.selected.prepend_buffer = values[0] or ""

    @app.callback(
        Input("model_select", "value"),
        prevent_initial_call=True,
    )
    def select_model(model):
        if not model:
            return
        with app.lock:
            chat = app.sessions.selected
            if chat.model != model:
                logger.info("chat %s now uses %s", chat.id, model)
                chat.model = model

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input({"type": "delete_button", "index": ALL}, "n_clicks")],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def delete_message(n_clicks, version):
        if not _clicked():
            return no_update
        idx = callback_context.triggered_id["index"]
        with app.lock:
            chat = app.sessions.selected
            if chat.is_generating or not 0 <= idx < len(chat.messages):
                return no_update
            chat.delete_message(idx)
        return (version or 0) + 1

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [
            Input({"type": "prepend_regenerate", "index": ALL}, "n_clicks"),
            Input({"type": "prepend_edit", "index": ALL}, "n_clicks"),
            Input({"type": "prepend_cancel", "index": ALL}, "n_clicks"),
        ],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def finish_prepend(regenerate_clicks, edit_clicks, cancel_clicks, version):
        if not _clicked():
            return no_update
        trigger = callback_context.triggered_id
        idx = trigger["index"]
        with app.lock:
            chat = app.sessions.selected
            if trigger["type"] == "prepend_regenerate":
                if chat.is_generating:
                    return no_update
                chat.regenerate(idx)
            elif trigger["type"] == "prepend_edit":
                try:
                    chat.edit(idx)
                except ValueError:
                    return no_update
            else:
                chat.cancel_prepend()
        return (version or 0) + 1

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [Input("new_conversation_button", "n_clicks")],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def create_new_chat(n_clicks, version):
        if not n_clicks:
            return no_update
        with app.lock:
            app.sessions.add_chat()
        return (version or 0) + 1

    @app.callback(
        Output("state_version", "data", allow_duplicate=True),
        [
            Input({"type": "convo_item", "id": ALL}, "n_clicks"),
            Input({"type": "convo_delete", "id": ALL}, "n_clicks"),
        ],
        [State("state_version", "data")],
        prevent_initial_call=True,
    )
    def switch_or_delete_conversation(item_clicks, delete_clicks, version):
        if not _clicked():
            return no_update
        trigger = callback_context.triggered_id
        with app.lock:
            idx = app.sessions.index_of(trigger["id"])
            if idx is None:
                return no_update
            if trigger["type"] == "convo_delete":
                app.sessions.remove_chat(idx)
            else:
                app.sessions.select(idx)
        return (version or 0) + 1

    @app.callback(
        Output("export_download", "data"),
        [Input("export_button", "n_clicks")],
        [State("export_format", "value")],
        prevent_initial_call=True,
    )
    def export_chat(n_clicks, export_format):
        if not n_clicks:
            return no_update
        fmt = ExportFormat(export_format)
        with app.lock:
            chat = app.sessions.selected
            content = export_messages(chat.messages, fmt)
            filename = f"{chat.summary or f'chat-{chat.id}'}.{fmt.extensions[0]}"
        logger.info("exporting %d messages (format: %s)", len(chat.messages), fmt.value)
        return dcc.send_string(content, filename)

    _register_clientside_callbacks(app)


def build_conversation_list(app):
    items = []
    for i, chat in enumerate(app.sessions.chats):
        title = chat.summary or "New Chat"
        if chat.is_generating:
            title += " …"
        items.append(
            html.Div(
                className="d-flex align-items-center",
                children=[
                    html.Div(
                        title,
                        id={"type": "convo_item", "id": chat.id},
                        n_clicks=0,
                        className="flex-grow-1 p-2"
                        + (" fw-bold" if i == app.sessions.selected_chat else ""),
                        style={"cursor": "pointer", "wordWrap": "break-word"},
                        title=chat.last_message_contents() or "",
                    ),
                    html.Button(
                        "🗑",
                        id={"type": "convo_delete", "id": chat.id},
                        n_clicks=0,
                        className="btn btn-sm btn-link",
                        title=f'Remove chat "{title}"',
                    ),
                ],
            )
        )
    return items


def _register_clientside_callbacks(app):
    app.clientside_callback(
        """
        function(pathname) {
            setTimeout(function() {
                const textarea = document.getElementById('input_textarea');
                const submitButton = document.getElementById('submit_button');

                if (textarea && submitButton && !window.enterListenerSetup) {
                    window.enterListenerSetup = true;
                    textarea.addEventListener('keydown', function(e) {
                        // Shift+Enter inserts a newline
                        if (e.key === 'Enter' && !e.shiftKey) {
                            e.preventDefault();
                            if (textarea.value.trim() && !submitButton.disabled) {
                                submitButton.click();
                            }
                        }
                    });
                }
            }, 100);

            return window.dash_clientside.no_update;
        }
        """,
        Output("input_textarea", "title"),
        [Input("state_version", "data")],
    )

    # Auto-scroll to bottom
    app.clientside_callback(
        """
        function(messages_content) {
            if (messages_content && messages_content.length > 0) {
                setTimeout(function() {
                    const messagesContainer = document.getElementById('messages_container');
                    if (messagesContainer) {
                        messagesContainer.scrollTop = messagesContainer.scrollHeight;
                    }
                }, 100);
            }
            return window.dash_clientside.no_update;
        }
        """,
        Output("messages_container", "data-scroll-trigger"),
        [Input("messages_container", "children")],
        prevent_initial_call=True,
    )
