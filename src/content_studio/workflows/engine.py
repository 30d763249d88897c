"""Multi-step wizard state machine.

A workflow is an ordered list of steps. Each step produces a result from the
session inputs and the confirmed results of the steps before it. A step can only
run or be confirmed once every earlier step is confirmed, so confirmed steps
always form a prefix of the workflow. Re-running a step throws away everything
downstream of it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from content_studio import web
from content_studio.errors import InvalidInputError, ProviderNotConfiguredError, StepLockedError
from content_studio.providers.base import ImageProvider, ReferenceImage, TextProvider
from content_studio.storage import AssetStore

logger = logging.getLogger(__name__)

StepFn = Callable[["StepContext"], Awaitable[Any]]
InputValidator = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class StepSpec:
    name: str
    title: str
    run: StepFn
    selectable: bool = False
    pick_one: bool = False
    items_key: str | None = None
    conversational: bool = False
    editable: bool = False


@dataclass(frozen=True)
class WorkflowDefinition:
    tool: str
    title: str
    steps: tuple[StepSpec, ...]
    required_inputs: tuple[str, ...]
    artifact_type: str
    title_input: str | None = None
    description: str = ""
    validate: InputValidator | None = None

    def step_index(self, name: str) -> int:
        for idx, spec in enumerate(self.steps):
            if spec.name == name:
                return idx
        raise InvalidInputError(
            f"Unknown step '{name}' for {self.tool}",
            code="unknown_step",
            details={"steps": [s.name for s in self.steps]},
        )

    def describe(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "title": self.title,
            "description": self.description,
            "required_inputs": list(self.required_inputs),
            "artifact_type": self.artifact_type,
            "steps": [_describe_spec(s) for s in self.steps],
        }


def _describe_spec(spec: StepSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "title": spec.title,
        "selectable": spec.selectable,
        "pick_one": spec.pick_one,
        "conversational": spec.conversational,
        "editable": spec.editable,
    }


@dataclass
class StepRecord:
    name: str
    result: Any = None
    confirmed: bool = False
    selection: list[int] | None = None
    confirmed_value: Any = None
    instructions: list[str] = field(default_factory=list)
    runs: int = 0
    error: str | None = None


@dataclass
class WorkflowSession:
    session_id: str
    definition: WorkflowDefinition
    owner_id: str
    inputs: dict[str, Any]
    steps: list[StepRecord]
    created_at: str

    @property
    def tool(self) -> str:
        return self.definition.tool

    def record(self, name: str) -> StepRecord:
        return self.steps[self.definition.step_index(name)]


@dataclass
class StepServices:
    """Collaborators a step may call. Providers are None when not configured."""

    text: TextProvider | None = None
    image: ImageProvider | None = None
    assets: AssetStore | None = None
    fetch_page: Callable[[str], Awaitable[web.Page]] = web.fetch_page
    fetch_image: Callable[[str], Awaitable[ReferenceImage]] = web.fetch_image
    find_images: Callable[[str], Awaitable[list[str]]] = web.find_style_images

    def require_text(self) -> TextProvider:
        if self.text is None:
            raise ProviderNotConfiguredError("No text provider is configured (set GEMINI_API_KEY or OPENAI_API_KEY)")
        return self.text

    def require_image(self) -> ImageProvider:
        if self.image is None:
            raise ProviderNotConfiguredError("GEMINI_API_KEY is not set")
        return self.image


@dataclass
class StepContext:
    session_id: str
    tool: str
    inputs: dict[str, Any]
    confirmed: dict[str, Any]
    previous: Any
    instructions: str | None
    message: str | None
    transcript: list[dict[str, str]]
    services: StepServices

    @property
    def text(self) -> TextProvider:
        return self.services.require_text()

    @property
    def image(self) -> ImageProvider:
        return self.services.require_image()

    def input(self, name: str, default: str = "") -> str:
        value = self.inputs.get(name)
        if value is None:
            return default
        return value.strip() if isinstance(value, str) else value

    def value(self, step: str) -> Any:
        return self.confirmed.get(step)

    async def load_reference(self, value: str) -> str:
        value = (value or "").strip()
        if value.startswith("http"):
            page = await self.services.fetch_page(value)
            return page.text
        return value


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def start(definition: WorkflowDefinition, owner_id: str, inputs: dict[str, Any]) -> WorkflowSession:
    inputs = dict(inputs or {})
    missing = [name for name in definition.required_inputs if _is_blank(inputs.get(name))]
    if missing:
        raise InvalidInputError(
            f"Missing required input: {', '.join(missing)}",
            code="missing_input",
            details={"missing": missing},
        )
    if definition.validate is not None:
        definition.validate(inputs)

    session = WorkflowSession(
        session_id=uuid.uuid4().hex[:12],
        definition=definition,
        owner_id=owner_id,
        inputs=inputs,
        steps=[StepRecord(name=s.name) for s in definition.steps],
        created_at=_now_iso(),
    )
    logger.info("Started %s session %s for %s", definition.tool, session.session_id, owner_id)
    return session


def ensure_runnable(session: WorkflowSession, idx: int) -> None:
    for prior in session.steps[:idx]:
        if not prior.confirmed:
            raise StepLockedError(
                f"Confirm step '{prior.name}' first",
                details={"step": session.steps[idx].name, "blocked_by": prior.name},
            )


def upstream_state(session: WorkflowSession, idx: int) -> list[tuple[int, bool, Any]]:
    return [(r.runs, r.confirmed, r.confirmed_value) for r in session.steps[:idx]]


def ensure_current(
    session: WorkflowSession,
    idx: int,
    record: StepRecord,
    upstream: list[tuple[int, bool, Any]],
) -> None:
    """Raise if earlier steps changed (or the session was reset) since `upstream` was taken."""
    if session.steps[idx] is record and upstream_state(session, idx) == upstream:
        return
    step = session.steps[idx].name
    logger.info("Discarding stale %s/%s result for session %s", session.tool, step, session.session_id)
    raise StepLockedError(
        f"Earlier steps changed while '{step}' was running; run it again",
        code="stale_result",
        details={"step": step},
    )


def _confirmed_values(session: WorkflowSession, idx: int) -> dict[str, Any]:
    return {r.name: r.confirmed_value for r in session.steps[:idx]}


def _clear_after(session: WorkflowSession, idx: int) -> None:
    for pos in range(idx + 1, len(session.steps)):
        session.steps[pos] = StepRecord(name=session.steps[pos].name)


def store_result(session: WorkflowSession, idx: int, result: Any, instructions: str | None = None) -> StepRecord:
    """Replace a step's result. The step becomes unconfirmed and later steps are discarded."""
    record = session.steps[idx]
    record.result = result
    record.confirmed = False
    record.selection = None
    record.confirmed_value = None
    record.error = None
    record.runs += 1
    if instructions:
        record.instructions.append(instructions)
    _clear_after(session, idx)
    return record


def build_context(
    session: WorkflowSession,
    idx: int,
    services: StepServices,
    instructions: str | None = None,
    message: str | None = None,
    transcript: list[dict[str, str]] | None = None,
) -> StepContext:
    return StepContext(
        session_id=session.session_id,
        tool=session.tool,
        inputs=session.inputs,
        confirmed=_confirmed_values(session, idx),
        previous=session.steps[idx].result,
        instructions=(instructions or "").strip() or None,
        message=message,
        transcript=transcript or [],
        services=services,
    )


async def run_step(
    session: WorkflowSession,
    step: str,
    services: StepServices,
    instructions: str | None = None,
    message: str | None = None,
) -> StepRecord:
    idx = session.definition.step_index(step)
    spec = session.definition.steps[idx]
    ensure_runnable(session, idx)
    record = session.steps[idx]

    transcript: list[dict[str, str]] = []
    gathered: dict[str, Any] = {}
    if spec.conversational:
        message = (message or "").strip() or None
        previous = record.result if isinstance(record.result, dict) else None
        if message is not None:
            if previous is None:
                raise InvalidInputError("Start the interview before answering", code="interview_not_started")
            if previous.get("complete"):
                raise InvalidInputError("The interview is already complete", code="interview_complete")
            transcript = list(previous.get("transcript") or [])
            gathered = dict(previous.get("gathered") or {})
            transcript.append({"role": "user", "text": message})
    elif message:
        raise InvalidInputError(f"Step '{step}' does not take messages")

    ctx = build_context(session, idx, services, instructions=instructions, message=message, transcript=transcript)
    upstream = upstream_state(session, idx)
    logger.info("Running %s/%s for session %s (run %d)", session.tool, step, session.session_id, record.runs + 1)
    try:
        result = await spec.run(ctx)
    except Exception as exc:
        record.error = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        logger.warning("%s/%s failed for session %s: %s", session.tool, step, session.session_id, record.error)
        raise

    ensure_current(session, idx, record, upstream)

    if spec.conversational:
        reply = result if isinstance(result, dict) else {"message": str(result)}
        transcript.append({"role": "ai", "text": str(reply.get("message") or "")})
        if isinstance(reply.get("gathered"), dict):
            gathered.update(reply["gathered"])
        result = {"transcript": transcript, "gathered": gathered, "complete": bool(reply.get("complete"))}
        if message is not None:
            # Answering continues the same interview rather than regenerating it.
            record.result = result
            record.confirmed = False
            record.confirmed_value = None
            record.error = None
            record.runs += 1
            _clear_after(session, idx)
            _write_manifest(session, spec, services, ctx, result)
            return record

    record = store_result(session, idx, result, instructions=ctx.instructions)
    _write_manifest(session, spec, services, ctx, result)
    return record


def _summarize(result: Any) -> dict[str, Any]:
    if isinstance(result, str):
        return {"kind": "text", "chars": len(result)}
    if isinstance(result, list):
        return {"kind": "list", "items": len(result)}
    if isinstance(result, dict):
        return {"kind": "object", "keys": sorted(result.keys())}
    return {"kind": type(result).__name__}


def _write_manifest(
    session: WorkflowSession,
    spec: StepSpec,
    services: StepServices,
    ctx: StepContext,
    result: Any,
) -> None:
    if services.assets is None:
        return
    provider = services.text
    services.assets.write_run_manifest(
        session.session_id,
        {
            "type": f"{session.tool}.{spec.name}",
            "provider": getattr(provider, "name", None),
            "model": getattr(provider, "model", None),
            "inputs": {
                "session_inputs": session.inputs,
                "instructions": ctx.instructions,
                "message": ctx.message,
            },
            "outputs": _summarize(result),
        },
    )


def _selection_items(spec: StepSpec, result: Any) -> list[Any]:
    items = result.get(spec.items_key) if spec.items_key and isinstance(result, dict) else result
    if not isinstance(items, list):
        raise InvalidInputError(f"Step '{spec.name}' has nothing to select from")
    return items


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "list"
    if isinstance(value, str):
        return "text"
    return type(value).__name__


def _check_edit_shape(spec: StepSpec, original: Any, edited: Any) -> None:
    """An edit replaces the result, so it must keep the shape later steps read."""
    problem = None
    if _kind(edited) != _kind(original):
        problem = f"expected {_kind(original)}, got {_kind(edited)}"
    else:
        items, new_items = original, edited
        if spec.items_key and isinstance(original, dict):
            items, new_items = original.get(spec.items_key), edited.get(spec.items_key)
            if isinstance(items, list) and not isinstance(new_items, list):
                problem = f"'{spec.items_key}' must be a list"
        if problem is None and isinstance(items, list) and items and isinstance(new_items, list):
            allowed = {_kind(i) for i in items}
            wrong = sorted({_kind(i) for i in new_items} - allowed)
            if wrong:
                problem = f"items must be {' or '.join(sorted(allowed))}, got {' or '.join(wrong)}"
    if problem:
        raise InvalidInputError(
            f"Edited value for step '{spec.name}' has the wrong shape: {problem}",
            code="invalid_edit",
            details={"step": spec.name, "expected": _kind(original)},
        )


def _resolve_selection(spec: StepSpec, result: Any, selection: list[int] | None) -> tuple[list[int], Any]:
    items = _selection_items(spec, result)
    picked = list(selection or [])
    if not picked:
        raise InvalidInputError("Select at least one item", code="empty_selection")
    if len(set(picked)) != len(picked):
        raise InvalidInputError("Selection contains duplicates", code="invalid_selection")
    out_of_range = [i for i in picked if i < 0 or i >= len(items)]
    if out_of_range:
        raise InvalidInputError(
            "Selection is out of range",
            code="invalid_selection",
            details={"out_of_range": out_of_range, "items": len(items)},
        )
    if spec.pick_one:
        if len(picked) != 1:
            raise InvalidInputError("Select exactly one item", code="invalid_selection")
        return picked, items[picked[0]]
    return picked, [items[i] for i in picked]


def confirm_step(
    session: WorkflowSession,
    step: str,
    selection: list[int] | None = None,
    edited: Any = None,
) -> StepRecord:
    idx = session.definition.step_index(step)
    spec = session.definition.steps[idx]
    ensure_runnable(session, idx)
    record = session.steps[idx]
    if record.result is None:
        raise StepLockedError(f"Run step '{step}' before confirming it", code="step_not_run")

    result = record.result
    if edited is not None:
        if not spec.editable:
            raise InvalidInputError(f"Step '{step}' cannot be edited", code="not_editable")
        _check_edit_shape(spec, record.result, edited)
        result = edited

    if spec.selectable:
        picked, value = _resolve_selection(spec, result, selection)
    elif selection:
        raise InvalidInputError(f"Step '{step}' does not take a selection", code="not_selectable")
    else:
        picked, value = None, result

    if record.confirmed_value != value and any(r.result is not None for r in session.steps[idx + 1 :]):
        _clear_after(session, idx)

    record.result = result
    record.selection = picked
    record.confirmed_value = value
    record.confirmed = True
    logger.info("Confirmed %s/%s for session %s", session.tool, step, session.session_id)
    return record


def go_back(session: WorkflowSession, step: str) -> None:
    """Unconfirm `step` and everything after it. Results and the last choice are kept."""
    idx = session.definition.step_index(step)
    for record in session.steps[idx:]:
        record.confirmed = False


def reset(session: WorkflowSession) -> None:
    session.steps = [StepRecord(name=s.name) for s in session.definition.steps]
    logger.info("Reset %s session %s", session.tool, session.session_id)


def current_step(session: WorkflowSession) -> int:
    for idx, record in enumerate(session.steps):
        if not record.confirmed:
            return idx
    return len(session.steps)


def session_title(session: WorkflowSession) -> str:
    key = session.definition.title_input
    value = session.inputs.get(key) if key else None
    if isinstance(value, str) and value.strip():
        first_line = value.strip().splitlines()[0]
        return f"{session.definition.title}: {first_line[:60]}"
    return session.definition.title


def final_content(session: WorkflowSession) -> dict[str, Any] | None:
    last = session.steps[-1]
    if last.result is None:
        return None
    content = last.confirmed_value if last.confirmed else last.result
    return {
        "tool": session.tool,
        "title": session_title(session),
        "content": content,
        "metadata": {
            "session_id": session.session_id,
            "inputs": session.inputs,
            "steps": {r.name: r.confirmed_value for r in session.steps[:-1] if r.confirmed},
        },
    }


def session_to_dict(session: WorkflowSession) -> dict[str, Any]:
    current = current_step(session)
    steps = []
    for idx, (spec, record) in enumerate(zip(session.definition.steps, session.steps)):
        row = _describe_spec(spec)
        row.update(
            {
                "result": record.result,
                "confirmed": record.confirmed,
                "selection": record.selection,
                "instructions": record.instructions,
                "runs": record.runs,
                "error": record.error,
                "locked": idx > current,
            }
        )
        steps.append(row)
    return {
        "session_id": session.session_id,
        "tool": session.tool,
        "title": session_title(session),
        "owner_id": session.owner_id,
        "inputs": session.inputs,
        "created_at": session.created_at,
        "current_step": current,
        "complete": current == len(session.steps),
        "steps": steps,
    }
