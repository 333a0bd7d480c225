"""Tests for dispatching, streaming and cancelling completions."""

import threading

import pytest
from chatweave.channel import Failed, Panicked, ProgressChannel, Succeeded
from chatweave.compaction import REFLECTIONS_PREFIX
from chatweave.errors import TransportError
from chatweave.models import BinaryPart, CompletionSuccess, Message, TextPart
from chatweave.orchestrator import (
    MISSING_API_KEY_MESSAGE,
    CompletionOrchestrator,
    TaskState,
)

from conftest import ScriptedLLM, answer, thought


@pytest.fixture
def history():
    return [Message.user("Tell me a joke"), Message.assistant()]


@pytest.fixture
def channel():
    return ProgressChannel(1)


@pytest.fixture
def stop_event():
    return threading.Event()


def collect(channel, handle):
    assert handle.join(5), "completion task did not finish"
    events, outcomes = [], []
    channel.extract(events.append).finalize(outcomes.append)
    return events, outcomes


class TestDispatch:
    def test_missing_api_key_reports_error_without_calling_backend(
        self, no_key_settings, history, channel, stop_event
    ):
        llm = ScriptedLLM(chunks=[answer("never")])
        orchestrator = CompletionOrchestrator(llm, no_key_settings)
        handle = orchestrator.start(history, 1, channel, stop_event)

        assert handle.state == TaskState.FAILED
        events, outcomes = collect(channel, handle)
        assert events == []
        assert len(outcomes) == 1
        assert isinstance(outcomes[0], Failed)
        assert outcomes[0].error.index == 1
        assert outcomes[0].error.message == MISSING_API_KEY_MESSAGE
        assert llm.sessions == []

    def test_channel_is_active_right_after_start(
        self, make_orchestrator, history, channel, stop_event
    ):
        gate = threading.Event()
        llm = ScriptedLLM(response=answer("x"), gate=gate)
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        assert channel.is_active
        gate.set()
        collect(channel, handle)
        assert not channel.is_active

    def test_stale_stop_request_is_cleared_on_dispatch(
        self, make_orchestrator, history, channel, stop_event
    ):
        stop_event.set()
        llm = ScriptedLLM(chunks=[answer("Why "), answer("not?")])
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        events, _ = collect(channel, handle)
        assert handle.state == TaskState.COMPLETED
        assert len(events) == 2

    def test_backend_receives_compacted_session(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(chunks=[answer("ok")])
        handle = make_orchestrator(llm, system_instruction="Be funny.").start(
            history, 1, channel, stop_event
        )
        collect(channel, handle)
        (session,) = llm.sessions
        assert session.system_instruction == "Be funny."
        assert [t.author for t in session.turns] == ["user"]
        assert session.turns[0].parts[0].text == "Tell me a joke"

    def test_live_messages_are_not_shared_with_the_task(
        self, make_orchestrator, history, channel, stop_event
    ):
        gate = threading.Event()
        llm = ScriptedLLM(response=answer("x"), gate=gate)
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        history[0].content = "edited afterwards"
        gate.set()
        collect(channel, handle)
        assert llm.sessions[0].turns[0].parts[0].text == "Tell me a joke"

    def test_thoughts_folded_into_history_when_enabled(
        self, make_orchestrator, channel, stop_event
    ):
        messages = [
            Message.user("q"),
            Message(role="assistant", content="hmm", is_thought=True),
            Message(role="assistant", content="a"),
            Message.user("q2"),
            Message.assistant(),
        ]
        llm = ScriptedLLM(chunks=[answer("ok")])
        orchestrator = make_orchestrator(llm, include_thoughts_in_history=True)
        handle = orchestrator.start(messages, 4, channel, stop_event)
        collect(channel, handle)
        reply_turn = llm.sessions[0].turns[1]
        assert reply_turn.parts[0].text.startswith(REFLECTIONS_PREFIX + "hmm")
        assert messages[1].is_thought

    def test_request_uses_the_given_model(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(chunks=[answer("ok")])
        handle = make_orchestrator(llm).start(
            history, 1, channel, stop_event, model="gemini-2.5-pro"
        )
        collect(channel, handle)
        assert handle.model == "gemini-2.5-pro"
        assert llm.models == ["gemini-2.5-pro"]

    def test_model_defaults_to_the_backend_model(
        self, make_orchestrator, history, channel, stop_event
    ):
        gate = threading.Event()
        gate.set()
        llm = ScriptedLLM(response=answer("ok"), gate=gate)
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        collect(channel, handle)
        assert llm.models == ["scripted-v1"]


class TestStreaming:
    def test_every_part_is_forwarded_in_order(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(chunks=[thought("pondering"), answer("Why did "), answer("the chicken")])
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        events, outcomes = collect(channel, handle)

        assert [e.part.text for e in events] == ["pondering", "Why did ", "the chicken"]
        assert [e.part.thought for e in events] == [True, False, False]
        assert all(e.index == 1 for e in events)
        assert outcomes == [Succeeded(CompletionSuccess(index=1))]
        assert handle.state == TaskState.COMPLETED

    def test_multi_part_chunk_is_split_into_events(
        self, make_orchestrator, history, channel, stop_event
    ):
        chunk = [TextPart(text="see: "), BinaryPart(mime_type="image/png", data=b"png")]
        llm = ScriptedLLM(chunks=[chunk])
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        events, _ = collect(channel, handle)
        assert [type(e.part) for e in events] == [TextPart, BinaryPart]

    def test_cancel_mid_stream(self, make_orchestrator, history, channel, stop_event):
        def stop_before_second(i):
            if i == 1:
                stop_event.set()

        llm = ScriptedLLM(
            chunks=[answer("one"), answer("two"), answer("three")],
            on_chunk=stop_before_second,
        )
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        events, outcomes = collect(channel, handle)

        assert [e.part.text for e in events] == ["one"]
        assert outcomes == [Succeeded(CompletionSuccess(index=1))]
        assert handle.state == TaskState.CANCELLED
        assert not stop_event.is_set()

    def test_handle_cancel_sets_the_shared_flag(self, make_orchestrator, history, channel, stop_event):
        gate = threading.Event()
        llm = ScriptedLLM(response=answer("late"), gate=gate)
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        handle.cancel()
        events, outcomes = collect(channel, handle)
        gate.set()
        assert events == []
        assert handle.state == TaskState.CANCELLED

    def test_transport_error_becomes_error_outcome(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(error=TransportError('StatusNotOk("{\\"code\\":503}")'))
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        events, outcomes = collect(channel, handle)

        assert events == []
        assert isinstance(outcomes[0], Failed)
        assert outcomes[0].error.index == 1
        assert "503" in outcomes[0].error.message
        assert handle.state == TaskState.FAILED

    def test_unexpected_exception_panics(self, make_orchestrator, history, channel, stop_event):
        llm = ScriptedLLM(error=RuntimeError("backend bug"))
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event)
        _, outcomes = collect(channel, handle)

        assert isinstance(outcomes[0], Panicked)
        assert str(outcomes[0].exception) == "backend bug"
        assert handle.state == TaskState.PANICKED


class TestBlocking:
    def test_response_parts_then_success_with_text(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(response=thought("considering") + answer("Knock knock."))
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        events, outcomes = collect(channel, handle)

        assert [e.part.text for e in events] == ["considering", "Knock knock."]
        assert outcomes == [Succeeded(CompletionSuccess(index=1, text="Knock knock."))]
        assert handle.state == TaskState.COMPLETED

    def test_use_streaming_defaults_to_settings(
        self, make_orchestrator, history, channel, stop_event
    ):
        llm = ScriptedLLM(response=answer("blocking"), chunks=[answer("streaming")])
        handle = make_orchestrator(llm, use_streaming=False).start(history, 1, channel, stop_event)
        events, _ = collect(channel, handle)
        assert events[0].part.text == "blocking"

    def test_cancel_while_waiting_discards_response(
        self, make_orchestrator, history, channel, stop_event
    ):
        gate = threading.Event()
        llm = ScriptedLLM(response=answer("too late"), gate=gate)
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        stop_event.set()
        events, outcomes = collect(channel, handle)
        gate.set()

        assert events == []
        assert outcomes == [Succeeded(CompletionSuccess(index=1))]
        assert handle.state == TaskState.CANCELLED
        assert not stop_event.is_set()

    def test_transport_error(self, make_orchestrator, history, channel, stop_event):
        llm = ScriptedLLM(error=TransportError("quota exceeded"))
        handle = make_orchestrator(llm).start(history, 1, channel, stop_event, use_streaming=False)
        _, outcomes = collect(channel, handle)
        assert outcomes[0].error.message == "quota exceeded"
