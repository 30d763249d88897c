from __future__ import annotations

import asyncio

import pytest

from content_studio.errors import InvalidInputError, ProviderError, StepLockedError
from content_studio.workflows import engine
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition


async def _ideas(ctx: StepContext):
    return [f"{ctx.input('topic')} idea {i}" for i in range(3)]


async def _draft(ctx: StepContext):
    picked = ", ".join(ctx.value("ideas"))
    if ctx.instructions:
        return f"draft of {picked} ({ctx.instructions})"
    return f"draft of {picked}"


async def _interview(ctx: StepContext):
    answers = [t for t in ctx.transcript if t["role"] == "user"]
    if not answers:
        return {"message": "What is the product?", "gathered": {}, "complete": False}
    return {"message": "Thanks", "gathered": {f"a{len(answers)}": answers[-1]["text"]}, "complete": len(answers) >= 2}


async def _title(ctx: StepContext):
    return {"options": ["A", "B"], "draft": ctx.value("draft")}


DEFINITION = WorkflowDefinition(
    tool="toy",
    title="Toy",
    steps=(
        StepSpec("ideas", "Ideas", _ideas, selectable=True),
        StepSpec("draft", "Draft", _draft, editable=True),
        StepSpec("interview", "Interview", _interview, conversational=True),
        StepSpec("title", "Title", _title, selectable=True, pick_one=True, items_key="options"),
    ),
    required_inputs=("topic",),
    artifact_type="mixed",
    title_input="topic",
)


def run(session, step, services, **kwargs):
    return asyncio.run(engine.run_step(session, step, services, **kwargs))


def new_session():
    return engine.start(DEFINITION, "owner-1", {"topic": "Coffee"})


def test_start_requires_inputs():
    with pytest.raises(InvalidInputError) as exc:
        engine.start(DEFINITION, "owner-1", {"topic": "   "})
    assert exc.value.code == "missing_input"
    assert exc.value.details == {"missing": ["topic"]}


def test_step_is_locked_until_previous_is_confirmed(services):
    session = new_session()
    with pytest.raises(StepLockedError):
        run(session, "draft", services)

    run(session, "ideas", services)
    with pytest.raises(StepLockedError):
        run(session, "draft", services)


def test_confirmed_selection_feeds_next_step(services):
    session = new_session()
    run(session, "ideas", services)
    engine.confirm_step(session, "ideas", selection=[2, 0])
    record = run(session, "draft", services)

    assert record.result == "draft of Coffee idea 2, Coffee idea 0"
    assert session.record("ideas").selection == [2, 0]
    assert engine.current_step(session) == 1


def test_regenerating_clears_later_steps(services):
    session = new_session()
    run(session, "ideas", services)
    engine.confirm_step(session, "ideas", selection=[0])
    run(session, "draft", services)
    engine.confirm_step(session, "draft")

    run(session, "ideas", services, instructions="shorter")

    ideas = session.record("ideas")
    assert ideas.confirmed is False
    assert ideas.instructions == ["shorter"]
    assert ideas.runs == 2
    assert session.record("draft").result is None
    assert session.record("draft").confirmed is False


def test_instructions_reach_the_step(services):
    session = new_session()
    run(session, "ideas", services)
    engine.confirm_step(session, "ideas", selection=[1])
    record = run(session, "draft", services, instructions="make it funny")
    assert record.result.endswith("(make it funny)")


def test_failure_keeps_previous_result_and_records_error(services):
    calls = {"n": 0}

    async def flaky(ctx):
        calls["n"] += 1
        if calls["n"] > 1:
            raise ProviderError("quota exceeded")
        return "first"

    definition = WorkflowDefinition("flaky", "Flaky", (StepSpec("only", "Only", flaky),), (), "mixed")
    session = engine.start(definition, "owner-1", {})
    run(session, "only", services)
    engine.confirm_step(session, "only")

    with pytest.raises(ProviderError):
        run(session, "only", services)

    record = session.record("only")
    assert record.result == "first"
    assert record.confirmed is True
    assert record.error == "quota exceeded"


@pytest.mark.parametrize(
    ("selection", "code"),
    [
        ([], "empty_selection"),
        (None, "empty_selection"),
        ([1, 1], "invalid_selection"),
        ([3], "invalid_selection"),
        ([-1], "invalid_selection"),
    ],
)
def test_invalid_selection_is_rejected(services, selection, code):
    session = new_session()
    run(session, "ideas", services)
    with pytest.raises(InvalidInputError) as exc:
        engine.confirm_step(session, "ideas", selection=selection)
    assert exc.value.code == code
    assert session.record("ideas").confirmed is False


def test_confirm_requires_a_result():
    session = new_session()
    with pytest.raises(StepLockedError) as exc:
        engine.confirm_step(session, "ideas", selection=[0])
    assert exc.value.code == "step_not_run"


def test_edit_only_on_editable_steps(services):
    session = new_session()
    run(session, "ideas", services)
    with pytest.raises(InvalidInputError) as exc:
        engine.confirm_step(session, "ideas", selection=[0], edited=["mine"])
    assert exc.value.code == "not_editable"

    engine.confirm_step(session, "ideas", selection=[0])
    run(session, "draft", services)
    record = engine.confirm_step(session, "draft", edited="hand written")
    assert record.confirmed_value == "hand written"
    assert record.result == "hand written"


def test_selection_on_plain_step_is_rejected(services):
    session = new_session()
    run(session, "ideas", services)
    engine.confirm_step(session, "ideas", selection=[0])
    run(session, "draft", services)
    with pytest.raises(InvalidInputError) as exc:
        engine.confirm_step(session, "draft", selection=[0])
    assert exc.value.code == "not_selectable"


def _through_interview(session, services):
    run(session, "ideas", services)
    engine.confirm_step(session, "ideas", selection=[0])
    run(session, "draft", services)
    engine.confirm_step(session, "draft")


def test_interview_accumulates_transcript(services):
    session = new_session()
    _through_interview(session, services)

    with pytest.raises(InvalidInputError) as exc:
        run(session, "interview", services, message="hello")
    assert exc.value.code == "interview_not_started"

    run(session, "interview", services)
    run(session, "interview", services, message="A grinder")
    record = run(session, "interview", services, message="For baristas")

    result = record.result
    assert [t["role"] for t in result["transcript"]] == ["ai", "user", "ai", "user", "ai"]
    assert result["gathered"] == {"a1": "A grinder", "a2": "For baristas"}
    assert result["complete"] is True

    with pytest.raises(InvalidInputError) as exc:
        run(session, "interview", services, message="one more thing")
    assert exc.value.code == "interview_complete"


def test_message_on_plain_step_is_rejected(services):
    session = new_session()
    with pytest.raises(InvalidInputError):
        run(session, "ideas", services, message="hi")


def test_pick_one_uses_items_key(services):
    session = new_session()
    _through_interview(session, services)
    run(session, "interview", services)
    engine.confirm_step(session, "interview")
    run(session, "title", services)

    with pytest.raises(InvalidInputError):
        engine.confirm_step(session, "title", selection=[0, 1])
    record = engine.confirm_step(session, "title", selection=[1])
    assert record.confirmed_value == "B"
    assert engine.current_step(session) == len(DEFINITION.steps)


def test_go_back_keeps_results(services):
    session = new_session()
    _through_interview(session, services)

    engine.go_back(session, "ideas")

    assert engine.current_step(session) == 0
    assert session.record("ideas").result is not None
    assert session.record("draft").result == "draft of Coffee idea 0"
    assert not any(r.confirmed for r in session.steps)

    # Re-confirming the same choice keeps the downstream draft.
    engine.confirm_step(session, "ideas", selection=[0])
    assert session.record("draft").result == "draft of Coffee idea 0"


def test_confirming_a_different_choice_drops_later_results(services):
    session = new_session()
    _through_interview(session, services)
    engine.go_back(session, "ideas")

    engine.confirm_step(session, "ideas", selection=[1])

    assert session.record("draft").result is None


def test_reset_clears_everything(services):
    session = new_session()
    _through_interview(session, services)
    engine.reset(session)
    assert all(r.result is None and not r.confirmed for r in session.steps)


def test_final_content_and_session_dict(services):
    session = new_session()
    assert engine.final_content(session) is None

    _through_interview(session, services)
    run(session, "interview", services)
    engine.confirm_step(session, "interview")
    run(session, "title", services)

    final = engine.final_content(session)
    assert final["tool"] == "toy"
    assert final["title"] == "Toy: Coffee"
    assert final["content"] == {"options": ["A", "B"], "draft": "draft of Coffee idea 0"}
    assert final["metadata"]["steps"]["ideas"] == ["Coffee idea 0"]

    data = engine.session_to_dict(session)
    assert data["current_step"] == 3
    assert data["complete"] is False
    assert [s["locked"] for s in data["steps"]] == [False, False, False, False]


def test_later_steps_are_reported_locked():
    data = engine.session_to_dict(new_session())
    assert [s["locked"] for s in data["steps"]] == [False, True, True, True]


def test_unknown_step(services):
    session = new_session()
    with pytest.raises(InvalidInputError) as exc:
        run(session, "nope", services)
    assert exc.value.code == "unknown_step"


def test_run_writes_manifest(services):
    session = new_session()
    run(session, "ideas", services)
    manifests = services.assets.list_run_manifests(session.session_id)
    assert len(manifests) == 1
    assert manifests[0]["type"] == "toy.ideas"
    assert manifests[0]["outputs"] == {"kind": "list", "items": 3}
    assert manifests[0]["provider"] == "fake"


def test_result_of_a_step_whose_input_changed_mid_run_is_discarded(services):
    release = asyncio.Event()

    async def first(ctx):
        return f"first-{ctx.instructions or 'v1'}"

    async def second(ctx):
        await release.wait()
        return f"built-on:{ctx.value('a')}"

    definition = WorkflowDefinition(
        "chain", "Chain", (StepSpec("a", "A", first), StepSpec("b", "B", second)), (), "mixed"
    )
    session = engine.start(definition, "owner-1", {})

    async def scenario():
        await engine.run_step(session, "a", services)
        engine.confirm_step(session, "a")
        pending = asyncio.create_task(engine.run_step(session, "b", services))
        await asyncio.sleep(0)
        await engine.run_step(session, "a", services, instructions="v2")
        release.set()
        with pytest.raises(StepLockedError) as exc:
            await pending
        return exc.value

    err = asyncio.run(scenario())

    assert err.code == "stale_result"
    assert session.record("a").result == "first-v2"
    assert session.record("b").result is None
    assert engine.final_content(session) is None


def test_result_after_go_back_mid_run_is_discarded(services):
    release = asyncio.Event()

    async def slow_draft(ctx):
        await release.wait()
        return "late draft"

    definition = WorkflowDefinition(
        tool="chain",
        title="Chain",
        steps=(StepSpec("ideas", "Ideas", _ideas, selectable=True), StepSpec("draft", "Draft", slow_draft)),
        required_inputs=("topic",),
        artifact_type="mixed",
    )
    session = engine.start(definition, "owner-1", {"topic": "Tea"})

    async def scenario():
        await engine.run_step(session, "ideas", services)
        engine.confirm_step(session, "ideas", selection=[0])
        pending = asyncio.create_task(engine.run_step(session, "draft", services))
        await asyncio.sleep(0)
        engine.go_back(session, "ideas")
        release.set()
        with pytest.raises(StepLockedError):
            await pending

    asyncio.run(scenario())
    assert session.record("draft").result is None


async def _copy(ctx: StepContext):
    return [{"text": "Cold brew"}, {"text": "30 days"}]


async def _final(ctx: StepContext):
    return f"final with {ctx.value('copy')['text']}"


COPY_DEFINITION = WorkflowDefinition(
    tool="copy",
    title="Copy",
    steps=(
        StepSpec("copy", "Copy", _copy, selectable=True, pick_one=True, editable=True),
        StepSpec("final", "Final", _final),
    ),
    required_inputs=(),
    artifact_type="mixed",
)


@pytest.mark.parametrize("edited", ["My own text", ["My own text"], {"text": "My own"}, [{"text": "ok"}, 3]])
def test_edit_with_the_wrong_shape_is_rejected(services, edited):
    session = engine.start(COPY_DEFINITION, "owner-1", {})
    run(session, "copy", services)

    with pytest.raises(InvalidInputError) as exc:
        engine.confirm_step(session, "copy", selection=[0], edited=edited)

    assert exc.value.code == "invalid_edit"
    record = session.record("copy")
    assert record.result == [{"text": "Cold brew"}, {"text": "30 days"}]
    assert record.confirmed is False


def test_object_edit_must_stay_an_object(services):
    session = new_session()
    _through_interview(session, services)
    run(session, "interview", services)
    engine.confirm_step(session, "interview")
    run(session, "title", services)
    engine.go_back(session, "draft")
    with pytest.raises(InvalidInputError) as exc:
        engine.confirm_step(session, "draft", edited={"text": "not a draft"})
    assert exc.value.code == "invalid_edit"
    assert session.record("draft").result == "draft of Coffee idea 0"


def test_rejected_selection_leaves_the_edit_unapplied(services):
    session = engine.start(COPY_DEFINITION, "owner-1", {})
    run(session, "copy", services)

    with pytest.raises(InvalidInputError):
        engine.confirm_step(session, "copy", selection=[5], edited=[{"text": "Mine"}])
    assert session.record("copy").result == [{"text": "Cold brew"}, {"text": "30 days"}]

    record = engine.confirm_step(session, "copy", selection=[0])
    assert record.confirmed_value == {"text": "Cold brew"}


def test_edited_items_feed_the_next_step(services):
    session = engine.start(COPY_DEFINITION, "owner-1", {})
    run(session, "copy", services)
    engine.confirm_step(session, "copy", selection=[0], edited=[{"text": "Mine"}])

    assert run(session, "final", services).result == "final with Mine"
