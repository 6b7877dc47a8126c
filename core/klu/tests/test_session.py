import asyncio
import json

import pytest

from conftest import CORE_ID, REASONING_ID, wait_for
from klu.engine.events import SessionEventKind
from klu.engine.session import TurnState
from klu.engine.types import MessageKind, Role
from klu.errors import AlreadyGenerating, LoadFailed, TooManyToolCalls


def tool_call_block(name, call_id="call_1", **parameters):
    payload = {"id": call_id, "name": name, "parameters": parameters}
    return f"```json\n{json.dumps(payload)}\n```"


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestSend:

    @pytest.mark.asyncio
    async def test_empty_input_is_noop(self, runtime, loader):
        session = runtime.session("s1")

        assert await session.send("   ", "t1") is None
        assert runtime.store.history("t1") == []
        assert loader.load_count == 0
        assert session.state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_plain_answer(self, runtime, loader):
        loader.scripts[CORE_ID] = [["Hi", " there"]]
        session = runtime.session("s1")

        outcome = await session.send("Hello", "t1")

        assert outcome.state == TurnState.COMPLETED
        assert outcome.message.content == "Hi there"
        assert outcome.message.generating_time is not None
        assert outcome.tool_rounds == 0
        assert [m.role for m in runtime.store.history("t1")] == [Role.USER, Role.ASSISTANT]
        assert session.state == TurnState.IDLE
        assert not session.is_thinking
        assert session.thinking_time > 0

    @pytest.mark.asyncio
    async def test_system_prompt_lists_enabled_tools(self, runtime, loader, settings):
        settings.set_tool_enabled("analyze_image", False)

        await runtime.session("s1").send("Hello", "t1")

        system = loader.handle_for(CORE_ID).calls[0][0]
        assert system["role"] == "system"
        assert "list_files" in system["content"]
        assert "analyze_image" not in system["content"]

    @pytest.mark.asyncio
    async def test_second_send_while_generating_is_rejected(self, runtime, loader):
        loader.chunk_delay = 0.01
        loader.scripts[CORE_ID] = [["word "] * 100]
        session = runtime.session("s1")

        first = asyncio.create_task(session.send("Tell me a story", "t1"))
        await wait_for(lambda: session.is_generating)

        with pytest.raises(AlreadyGenerating):
            await session.send("Another", "t1")

        session.stop()
        await first
        assert [m.content for m in runtime.store.history("t1")] == ["Tell me a story"]

    @pytest.mark.asyncio
    async def test_events_bracket_the_turn(self, runtime, loader):
        loader.scripts[CORE_ID] = [["a", "b"]]
        session = runtime.session("s1")
        queue = session.events.subscribe()

        await session.send("Hello", "t1")
        kinds = [e.kind for e in drain(queue)]

        assert kinds == [
            SessionEventKind.THINKING_STARTED,
            SessionEventKind.OUTPUT_DELTA,
            SessionEventKind.OUTPUT_DELTA,
            SessionEventKind.COMPLETED,
            SessionEventKind.THINKING_ENDED,
        ]

    @pytest.mark.asyncio
    async def test_load_failure_aborts_turn(self, runtime, loader):
        loader.error = RuntimeError("no weights")
        session = runtime.session("s1")
        queue = session.events.subscribe()

        with pytest.raises(LoadFailed):
            await session.send("Hello", "t1")

        assert session.state == TurnState.IDLE
        assert not session.is_generating
        assert [m.role for m in runtime.store.history("t1")] == [Role.USER]
        assert SessionEventKind.FAILED in [e.kind for e in drain(queue)]

    @pytest.mark.asyncio
    async def test_tool_round_limit(self, runtime, loader, settings, tmp_path):
        settings.config.max_tool_rounds = 2
        loader.scripts[CORE_ID] = [[tool_call_block("list_files", directory=str(tmp_path))]]
        session = runtime.session("s1")

        with pytest.raises(TooManyToolCalls):
            await session.send("List forever", "t1")

        assert session.state == TurnState.IDLE
        roles = [m.role for m in runtime.store.history("t1")]
        assert roles.count(Role.TOOL) == 2


class TestToolTurn:

    @pytest.mark.asyncio
    async def test_list_files_end_to_end(self, runtime, loader, tmp_path):
        demo = tmp_path / "demo"
        demo.mkdir()
        for name in ("a.txt", "b.txt", "c.txt"):
            (demo / name).write_text(name)

        loader.scripts[CORE_ID] = [
            ["Let me look.\n", tool_call_block("list_files", directory=str(demo))],
            ["There are ", "3 files."],
        ]
        session = runtime.session("s1")

        outcome = await session.send("What is in my demo folder?", "t1")

        assert outcome.state == TurnState.COMPLETED
        assert outcome.tool_rounds == 1
        assert outcome.message.content == "There are 3 files."

        history = runtime.store.history("t1")
        assert [m.role for m in history] == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert history[1].kind == MessageKind.TOOL_CALL
        assert [c.call_id for c in history[1].tool_calls] == ["call_1"]
        assert history[1].tool_call_id is None
        assert history[2].kind == MessageKind.TOOL_RESULT
        assert history[2].tool_name == "list_files"
        for name in ("a.txt", "b.txt", "c.txt"):
            assert name in history[2].content

        handle = loader.handle_for(CORE_ID)
        assert len(handle.calls) == 2
        second_prompt = handle.calls[1]
        assert second_prompt[-1]["role"] == "tool"
        assert second_prompt[-1]["tool_call_id"] == "call_1"
        assert "a.txt" in second_prompt[-1]["content"]

    @pytest.mark.asyncio
    async def test_each_tool_call_id_is_kept(self, runtime, loader, tmp_path):
        loader.scripts[CORE_ID] = [
            [
                tool_call_block("list_files", call_id="call,a", directory=str(tmp_path)),
                "\n",
                tool_call_block("list_files", call_id="call_b", directory=str(tmp_path)),
            ],
            ["Both are empty."],
        ]

        await runtime.session("s1").send("List it twice", "t1")

        history = runtime.store.history("t1")
        assert [c.call_id for c in history[1].tool_calls] == ["call,a", "call_b"]
        assert [m.tool_call_id for m in history[2:4]] == ["call,a", "call_b"]
        assert history[1].to_dict()["tool_calls"][0] == {
            "id": "call,a",
            "name": "list_files",
            "arguments": {"directory": str(tmp_path)},
        }

    @pytest.mark.asyncio
    async def test_tool_error_is_fed_back(self, runtime, loader, tmp_path):
        loader.scripts[CORE_ID] = [
            [tool_call_block("list_files", directory=str(tmp_path / "missing"))],
            ["That folder does not exist."],
        ]

        outcome = await runtime.session("s1").send("List it", "t1")

        tool_message = runtime.store.history("t1")[2]
        assert tool_message.content.startswith("Error: Directory does not exist at path:")
        assert outcome.message.content == "That folder does not exist."

    @pytest.mark.asyncio
    async def test_tool_events(self, runtime, loader, tmp_path):
        loader.scripts[CORE_ID] = [
            [tool_call_block("list_files", directory=str(tmp_path))],
            ["Empty."],
        ]
        session = runtime.session("s1")
        queue = session.events.subscribe()

        await session.send("List it", "t1")
        events = drain(queue)

        dispatched = [e for e in events if e.kind == SessionEventKind.TOOL_DISPATCHED]
        completed = [e for e in events if e.kind == SessionEventKind.TOOL_COMPLETED]
        assert dispatched[0].data["tool"] == "list_files"
        assert completed[0].data["status"] == "success"


class TestStop:

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, runtime):
        assert runtime.session("s1").stop() is False

    @pytest.mark.asyncio
    async def test_stop_during_generation(self, runtime, loader):
        loader.chunk_delay = 0.01
        loader.scripts[CORE_ID] = [["word "] * 200, ["Back again."]]
        session = runtime.session("s1")
        queue = session.events.subscribe()

        task = asyncio.create_task(session.send("Write an essay", "t1"))
        await wait_for(lambda: loader.handles and loader.handles[0].yielded > 2)

        assert session.stop() is True
        assert not session.is_thinking
        assert not session.is_generating
        assert session.state == TurnState.IDLE

        outcome = await task
        assert outcome.state == TurnState.CANCELLED
        assert [m.role for m in runtime.store.history("t1")] == [Role.USER]
        assert SessionEventKind.CANCELLED in [e.kind for e in drain(queue)]

        # The session is usable again right away
        loader.chunk_delay = 0.0
        followup = await session.send("Shorter please", "t1")
        assert followup.state == TurnState.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_during_failing_load_is_cancelled(self, runtime, loader):
        loader.delay = 0.05
        loader.error = RuntimeError("no weights")
        session = runtime.session("s1")
        queue = session.events.subscribe()

        task = asyncio.create_task(session.send("Hello", "t1"))
        await wait_for(lambda: loader.load_count == 1)
        session.stop()
        outcome = await task

        assert outcome.state == TurnState.CANCELLED
        assert session.state == TurnState.IDLE
        kinds = [e.kind for e in drain(queue)]
        assert SessionEventKind.CANCELLED in kinds
        assert SessionEventKind.FAILED not in kinds

    @pytest.mark.asyncio
    async def test_stop_during_tool_dispatch(self, runtime, loader):
        loader.chunk_delay = 0.01
        loader.scripts[CORE_ID] = [[tool_call_block("perform_reasoning", problem="hard")]]
        loader.scripts[REASONING_ID] = [["<think>"] + ["hmm "] * 200]
        session = runtime.session("s1")

        task = asyncio.create_task(session.send("Think hard", "t1"))
        await wait_for(lambda: session.state == TurnState.DISPATCHING)
        await wait_for(lambda: any(h.model_id == REASONING_ID and h.yielded for h in loader.handles))

        session.stop()
        outcome = await task

        assert outcome.state == TurnState.CANCELLED
        roles = [m.role for m in runtime.store.history("t1")]
        assert roles == [Role.USER, Role.ASSISTANT]
        assert Role.TOOL not in roles


@pytest.mark.asyncio
async def test_runtime_reuses_sessions(runtime):
    assert runtime.session("a") is runtime.session("a")
    assert runtime.session("a") is not runtime.session("b")
    await runtime.shutdown()
