"""Tests for the chat orchestration graph, driven by a scripted fake model."""

import json
from types import SimpleNamespace

import pytest

from nextspark.agents.langgraph import combiner, orchestrator
from nextspark.agents.langgraph.handlers import normalize_priority, normalize_status
from nextspark.agents.langgraph.router import ROUTER_PROMPT, extract_json, parse_router_output
from nextspark.features.tasks.service import list_tasks


class FakeLLM:
    """Answers router prompts with `routes` and everything else with `summary`."""

    def __init__(self, routes, summary="Combined summary", fail_summary=False):
        self.routes = routes
        self.summary = summary
        self.fail_summary = fail_summary
        self.router_calls = 0
        self.summary_calls = 0

    def invoke(self, messages):
        if messages[0].content == ROUTER_PROMPT:
            self.router_calls += 1
            reply = self.routes if isinstance(self.routes, str) else json.dumps(self.routes)
            return SimpleNamespace(content=reply)
        self.summary_calls += 1
        if self.fail_summary:
            raise RuntimeError("model unavailable")
        return SimpleNamespace(content=self.summary)


def intent(type_, action="unknown", **parameters):
    return {"type": type_, "action": action, "parameters": parameters, "originalText": ""}


def test_create_task_uses_template(team):
    llm = FakeLLM({"intents": [intent("task", "create", title="Call supplier", priority="HIGH")]})
    result = orchestrator.run_orchestrator("Create task 'Call supplier' high priority", "owner-1", team.id, llm=llm)

    assert result["success"] is True
    assert result["response"] == 'Task created: "Call supplier"'
    assert llm.summary_calls == 0
    assert result["intents"][0]["type"] == "task"
    tasks, total = list_tasks(team.id, "owner-1")
    assert total == 1
    assert tasks[0].priority == "high"


def test_multiple_intents_are_synthesized(team):
    from nextspark.features.customers.service import create_customer

    create_customer(team.id, "owner-1", {"name": "Acme Corp"})
    llm = FakeLLM(
        {
            "intents": [
                intent("customer", "search", query="Acme"),
                intent("task", "list"),
            ]
        }
    )
    result = orchestrator.run_orchestrator("find Acme and show my tasks", "owner-1", team.id, llm=llm)

    assert result["response"] == "Combined summary"
    # handlers run in a fixed order regardless of routing order
    assert [r["type"] for r in result["results"]] == ["task", "customer"]
    assert result["results"][1]["count"] == 1


def test_synthesis_failure_falls_back_to_templates(team):
    llm = FakeLLM({"intents": [intent("task", "list"), intent("page", "list")]}, fail_summary=True)
    result = orchestrator.run_orchestrator("tasks and pages", "owner-1", team.id, llm=llm)
    assert result["response"] == "No tasks found.\n\nNo pages found."


def test_handler_errors_become_failed_results(team, add_member):
    add_member("viewer-1", "viewer")
    llm = FakeLLM({"intents": [intent("task", "create", title="Nope")]})
    result = orchestrator.run_orchestrator("create task Nope", "viewer-1", team.id, llm=llm)

    assert result["success"] is True
    assert result["results"][0]["success"] is False
    assert result["response"].startswith("I couldn't complete the operation: Failed to execute create")


def test_missing_parameters_are_reported(team):
    llm = FakeLLM({"intents": [intent("task", "delete")]})
    result = orchestrator.run_orchestrator("delete that task", "owner-1", team.id, llm=llm)
    assert result["results"][0]["error"] == "Missing task ID"


@pytest.mark.parametrize(
    "message,expected",
    [("Hello there", orchestrator.GREETING_EN), ("hola!", orchestrator.GREETING_ES)],
)
def test_greeting(team, message, expected):
    llm = FakeLLM({"intents": [intent("greeting")]})
    assert orchestrator.run_orchestrator(message, "owner-1", team.id, llm=llm)["response"] == expected


def test_clarification_question_is_returned(team):
    llm = FakeLLM(
        {
            "intents": [intent("clarification")],
            "needsClarification": True,
            "clarificationQuestion": "Which task do you mean?",
        }
    )
    result = orchestrator.run_orchestrator("do the thing", "owner-1", team.id, llm=llm)
    assert result["response"] == "Which task do you mean?"


def test_router_failure_goes_to_error_handler(team):
    llm = FakeLLM("I am not JSON")
    result = orchestrator.run_orchestrator("???", "owner-1", team.id, llm=llm)
    assert result["success"] is False
    assert result["response"] == orchestrator.ERROR_RESPONSE
    assert llm.router_calls == 3


def test_get_llm_requires_key(monkeypatch):
    from nextspark.core.config import settings
    from nextspark.core.errors import AppError

    monkeypatch.setattr(settings, "GROQ_API_KEY", None)
    with pytest.raises(AppError) as exc:
        orchestrator.get_llm()
    assert exc.value.code == "AI_NOT_CONFIGURED"


def test_extract_json_tolerates_fences_and_prose():
    assert extract_json('```json\n{"intents": []}\n```') == '{"intents": []}'
    assert extract_json('Sure! {"intents": []} hope that helps') == '{"intents": []}'
    assert parse_router_output("nope") is None
    parsed = parse_router_output('{"intents": [{"type": "task", "action": "list", "originalText": "my tasks"}]}')
    assert parsed.intents[0].original_text == "my tasks"


def test_normalizers():
    assert normalize_status("Completed") == "done"
    assert normalize_status("in progress") == "in-progress"
    assert normalize_status("someday") is None
    assert normalize_priority("URGENT") == "urgent"
    assert normalize_priority("critical") is None


def test_template_eligibility():
    six = [{"title": str(i)} for i in range(6)]
    assert combiner.can_use_template([{"type": "task", "operation": "create", "data": {}}])
    assert not combiner.can_use_template([{"type": "task", "operation": "list", "data": six}])
    assert combiner.is_spanish("muéstrame mis tareas")
    assert not combiner.is_spanish("show my tasks")
