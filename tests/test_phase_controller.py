"""Tests for the phase controller -- the conversation state machine."""

import json

import pytest

from finbuild.errors import CompletionFailedError, MissingVariableError, ProjectNotFoundError
from finbuild.services.chat.controller import GENERAL_QUERY_FALLBACK, is_affirmative, requirements_reply
from finbuild.services.chat.generators import components_from_blueprint
from finbuild.services.chat.models import ComponentStatus, Phase, ProjectSnapshot
from finbuild.services.chat_service import send_chat_message

from tests.conftest import OTHER_USER_ID, PROJECT_ID, USER_ID
from tests.fakes import seed_marker_templates

FOREX_EXTRACT = json.dumps({
    "name": "FX Momentum",
    "description": "Momentum trading bot for major forex pairs",
    "requirements": "Trade EUR/USD, 2% max risk per trade",
    "techStack": ["Python", "MetaTrader 5"],
    "financialDomain": "forex",
    "tradingVenue": "MetaTrader 5",
})

BLUEPRINT = {
    "overview": "Momentum bot",
    "components": [
        {"name": "Market Data", "description": "Tick feed", "dependencies": []},
        {"name": "Strategy", "description": "Signals", "dependencies": ["Market Data"]},
    ],
}

COMPONENT_REPLY = json.dumps({
    "summary": "Implemented",
    "files": [{"path": "src/module.py", "content": "print('ok')"}],
})

COMPLETE_FIELDS = dict(
    name="FX Momentum",
    description="Momentum bot",
    requirements="EUR/USD",
    tech_stack=["Python"],
    financial_domain="forex",
)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("message, expected", [
    ("Yes, go ahead", True),
    ("looks good to me", True),
    ("LGTM", True),
    ("I approve", True),
    ("not yet", False),
    ("eyes on the spread", False),
])
def test_is_affirmative(message, expected):
    assert is_affirmative(message) is expected


def test_requirements_reply_variants():
    empty = ProjectSnapshot(id=PROJECT_ID)
    assert "several details" in requirements_reply(empty)
    assert "project name, description, detailed requirements, technology stack" in requirements_reply(empty)

    two_missing = ProjectSnapshot(id=PROJECT_ID, name="A", description="B")
    assert requirements_reply(two_missing).endswith(
        "Could you provide the detailed requirements and technology stack?"
    )

    complete = ProjectSnapshot(id=PROJECT_ID, **COMPLETE_FIELDS)
    assert "Shall I proceed" in requirements_reply(complete)


# ---------------------------------------------------------------------------
# Requirements phase
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_forex_conversation_reaches_blueprint(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({
        "determine_intent": "generate",
        "extract_requirements": FOREX_EXTRACT,
    })

    response = await engine.controller.process_message(
        PROJECT_ID, "I want a momentum bot for EUR/USD on MT5 in Python", USER_ID,
    )

    assert response.update_project is True
    assert response.next_phase is Phase.BLUEPRINT
    assert response.metadata == {"type": "requirements_update", "requirementsComplete": True, "missing": []}
    project = response.project_data
    assert project.status == "requirements_completed"
    assert project.tech_stack == ["Python", "MetaTrader 5"]
    assert project.financial_domain == "forex"
    assert "Shall I proceed" in response.message
    assert gateway.templates_called == ["determine_intent", "extract_requirements"]


@pytest.mark.asyncio
async def test_empty_tech_stack_keeps_requirements_incomplete(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, name="FX", description="Bot", requirements="EUR/USD")
    gateway.replies.update({
        "determine_intent": "modify",
        "extract_requirements": json.dumps({"techStack": [], "tradingVenue": "OANDA"}),
    })

    response = await engine.controller.process_message(PROJECT_ID, "Use OANDA", USER_ID)

    assert response.metadata["requirementsComplete"] is False
    assert response.metadata["missing"] == ["technology stack"]
    assert response.next_phase is None
    assert response.project_data.status == "created"
    assert response.project_data.trading_venue == "OANDA"
    assert response.message.endswith("Could you provide the technology stack?")


@pytest.mark.asyncio
async def test_forex_dashboard_stays_incomplete(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({
        "determine_intent": "generate",
        "extract_requirements": json.dumps({
            "name": None,
            "description": "Forex trading dashboard",
            "requirements": None,
            "techStack": ["React", "Node"],
            "financialDomain": "trading",
            "tradingVenue": "forex",
        }),
    })

    response = await engine.controller.process_message(
        PROJECT_ID, "I want to build a forex trading dashboard in React and Node", USER_ID,
    )

    project = response.project_data
    assert project.financial_domain == "trading"
    assert project.trading_venue == "forex"
    assert project.tech_stack == ["React", "Node"]
    assert project.status == "created"
    assert response.metadata["missing"] == ["project name", "detailed requirements"]
    assert response.message.endswith("Could you provide the project name and detailed requirements?")


@pytest.mark.asyncio
async def test_tech_stack_completes_on_next_message(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, name="FX", description="Bot", requirements="EUR/USD")
    gateway.replies.update({
        "determine_intent": "modify",
        "extract_requirements": [json.dumps({"techStack": []}), json.dumps({"techStack": ["Python"]})],
    })

    await send_chat_message(engine, USER_ID, PROJECT_ID, "No stack yet")
    assert project_repo.rows[PROJECT_ID]["status"] == "created"

    result = await send_chat_message(engine, USER_ID, PROJECT_ID, "Use Python")
    assert result["next_phase"] == "blueprint"
    assert project_repo.rows[PROJECT_ID]["status"] == "requirements_completed"


@pytest.mark.asyncio
async def test_nothing_extracted_means_no_update(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({"determine_intent": "banana", "extract_requirements": "no idea"})

    response = await engine.controller.process_message(PROJECT_ID, "hmm", USER_ID)

    assert response.update_project is False
    assert response.project_data is None
    assert "several details" in response.message


@pytest.mark.asyncio
async def test_approval_in_requirements_phase_completes_filled_project(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": "approve", "extract_requirements": "Sounds right."})

    response = await engine.controller.process_message(PROJECT_ID, "yes that's correct", USER_ID)

    assert response.metadata["type"] == "requirements_update"
    assert response.metadata["requirementsComplete"] is True
    assert response.metadata["missing"] == []
    assert response.update_project is True
    assert response.project_data.status == "requirements_completed"
    assert response.next_phase is Phase.BLUEPRINT
    assert gateway.templates_called == ["determine_intent", "extract_requirements"]


@pytest.mark.asyncio
async def test_query_in_requirements_phase_is_answered(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({"determine_intent": "query", "general_query": "  A pip is 0.0001.  "})

    response = await engine.controller.process_message(PROJECT_ID, "What is a pip?", USER_ID)

    assert response.message == "A pip is 0.0001."
    assert response.metadata == {"type": "general_response"}
    assert "extract_requirements" not in gateway.templates_called


# ---------------------------------------------------------------------------
# Blueprint phase
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approve_without_blueprint_generates_one(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="requirements_completed", **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": "approve", "generate_blueprint": json.dumps(BLUEPRINT)})

    response = await engine.controller.process_message(PROJECT_ID, "Yes please", USER_ID)

    assert response.metadata["type"] == "blueprint_generated"
    assert response.update_project is True
    project = response.project_data
    assert project.status == "blueprint_generated"
    assert project.blueprint["overview"] == "Momentum bot"
    assert [c.name for c in project.components] == ["Market Data", "Strategy"]
    assert project.components[1].dependencies == [project.components[0].id]
    assert "forex application" in response.message


@pytest.mark.asyncio
async def test_blueprint_generation_failure_invites_retry(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="requirements_completed", **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": "generate", "generate_blueprint": "Sorry, I can't."})

    response = await engine.controller.process_message(PROJECT_ID, "Generate it", USER_ID)

    assert response.metadata["type"] == "blueprint_error"
    assert response.update_project is False
    assert "try again" in response.message


@pytest.mark.asyncio
async def test_approve_existing_blueprint(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="blueprint_generated", blueprint=BLUEPRINT, **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": "approve"})

    response = await engine.controller.process_message(PROJECT_ID, "Looks good", USER_ID)

    assert response.project_data.status == "blueprint_approved"
    assert response.next_phase is Phase.COMPONENT
    assert response.metadata == {"type": "phase_transition"}


@pytest.mark.asyncio
async def test_affirmative_word_approves_even_if_intent_differs(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="blueprint_generated", blueprint=BLUEPRINT, **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": "query"})

    response = await engine.controller.process_message(PROJECT_ID, "yes", USER_ID)

    assert response.project_data.status == "blueprint_approved"


@pytest.mark.asyncio
@pytest.mark.parametrize("intent, template, response_type", [
    ("modify", "blueprint_modify", "blueprint_modification_suggestion"),
    ("query", "blueprint_query", "blueprint_query_response"),
])
async def test_blueprint_modify_and_query(engine, project_repo, gateway, intent, template, response_type):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="blueprint_generated", blueprint=BLUEPRINT, **COMPLETE_FIELDS)
    gateway.replies.update({"determine_intent": intent, template: "Add a risk engine."})

    response = await engine.controller.process_message(PROJECT_ID, "Can we add risk checks?", USER_ID)

    assert response.message == "Add a risk engine."
    assert response.metadata == {"type": response_type}
    assert response.update_project is False
    assert '"Momentum bot"' in gateway.prompt_for(template)


@pytest.mark.asyncio
async def test_generate_after_approval_starts_components(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    components = [c.to_dict() for c in components_from_blueprint(BLUEPRINT)]
    project_repo.put(
        PROJECT_ID, USER_ID, status="blueprint_approved", blueprint=BLUEPRINT,
        components=components, **COMPLETE_FIELDS,
    )
    gateway.replies.update({"determine_intent": "generate", "generate_component": COMPONENT_REPLY})

    response = await engine.controller.process_message(PROJECT_ID, "Start building", USER_ID)

    assert response.metadata["type"] == "component_generated"
    project = response.project_data
    assert project.status == "component_generation"
    assert project.components[0].status is ComponentStatus.COMPLETED
    assert project.components[0].files == [{"path": "src/module.py", "content": "print('ok')"}]
    assert project.components[1].status is ComponentStatus.PENDING


@pytest.mark.asyncio
async def test_downstream_error_becomes_error_reply(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="blueprint_generated", blueprint=BLUEPRINT, **COMPLETE_FIELDS)
    gateway.replies.update({
        "determine_intent": "query",
        "blueprint_query": CompletionFailedError("anthropic API 500: overloaded"),
    })

    response = await engine.controller.process_message(PROJECT_ID, "Why Redis?", USER_ID)

    assert response.message.startswith("I encountered an error processing your message.")
    assert "overloaded" in response.message
    assert response.metadata["type"] == "error"
    assert response.update_project is False


# ---------------------------------------------------------------------------
# Component and support phases
# ---------------------------------------------------------------------------


def _component_project(project_repo, *completed: int):
    components = [c.to_dict() for c in components_from_blueprint(BLUEPRINT)]
    for index in completed:
        components[index]["status"] = "completed"
    project_repo.put(
        PROJECT_ID, USER_ID, status="component_generation", blueprint=BLUEPRINT,
        components=components, **COMPLETE_FIELDS,
    )


@pytest.mark.asyncio
async def test_component_generation_follows_dependencies(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    _component_project(project_repo, 0)
    gateway.replies.update({"determine_intent": "generate", "generate_component": COMPONENT_REPLY})

    response = await engine.controller.process_message(PROJECT_ID, "Next one", USER_ID)

    assert response.metadata["component"]["name"] == "Strategy"
    assert "DEPENDS ON: Market Data" in gateway.prompt_for("generate_component")


@pytest.mark.asyncio
async def test_component_failure_leaves_it_pending(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    _component_project(project_repo)
    gateway.replies.update({"determine_intent": "generate", "generate_component": "no json"})

    response = await engine.controller.process_message(PROJECT_ID, "Build", USER_ID)

    assert response.metadata["type"] == "component_error"
    assert response.metadata["componentName"] == "Market Data"
    assert response.update_project is False


@pytest.mark.asyncio
async def test_all_components_done_completes_project(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    _component_project(project_repo, 0, 1)
    gateway.replies.update({"determine_intent": "generate"})

    response = await engine.controller.process_message(PROJECT_ID, "Anything left?", USER_ID)

    assert response.metadata == {"type": "generation_complete"}
    assert response.project_data.status == "completed"
    assert response.next_phase is Phase.SUPPORT
    assert "generate_component" not in gateway.templates_called


@pytest.mark.asyncio
async def test_component_query(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    _component_project(project_repo, 0)
    gateway.replies.update({"determine_intent": "query", "component_query": "It streams ticks."})

    response = await engine.controller.process_message(PROJECT_ID, "What does Market Data do?", USER_ID)

    assert response.message == "It streams ticks."
    assert response.metadata == {"type": "component_query_response"}


@pytest.mark.asyncio
async def test_support_phase_uses_general_query(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="completed", **COMPLETE_FIELDS)
    gateway.replies.update({"general_query": "Deploy with Docker."})

    response = await engine.controller.process_message(PROJECT_ID, "How do I deploy?", USER_ID)

    assert response.message == "Deploy with Docker."
    assert gateway.templates_called == ["general_query"]
    prompt = gateway.prompt_for("general_query")
    assert "PROJECT NAME: FX Momentum" in prompt
    assert "CURRENT STATUS: completed" in prompt


@pytest.mark.asyncio
async def test_general_query_failure_uses_fallback(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID, status="completed", **COMPLETE_FIELDS)
    gateway.replies.update({"general_query": CompletionFailedError("down")})

    response = await engine.controller.process_message(PROJECT_ID, "Hello?", USER_ID)

    assert response.message == GENERAL_QUERY_FALLBACK
    assert response.metadata["type"] == "error"


# ---------------------------------------------------------------------------
# Faults that escape
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_project(engine):
    with pytest.raises(ProjectNotFoundError):
        await engine.controller.process_message(PROJECT_ID, "hi", USER_ID)


@pytest.mark.asyncio
async def test_other_users_project_is_not_found(engine, project_repo):
    project_repo.put(PROJECT_ID, OTHER_USER_ID)
    with pytest.raises(ProjectNotFoundError):
        await engine.controller.process_message(PROJECT_ID, "hi", USER_ID)


@pytest.mark.asyncio
async def test_missing_variable_escapes(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    await engine.store.create_project_template(PROJECT_ID, {
        "name": "general_query",
        "content": "[general_query]\n{{message}} for {{desk}}",
        "variables": [{"name": "message", "required": True}, {"name": "desk", "required": True}],
    })
    project_repo.put(PROJECT_ID, USER_ID, status="completed", **COMPLETE_FIELDS)

    with pytest.raises(MissingVariableError) as exc_info:
        await engine.controller.process_message(PROJECT_ID, "hi", USER_ID)
    assert exc_info.value.missing == ["desk"]


# ---------------------------------------------------------------------------
# Whole conversation through the chat service
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_conversation_persists_each_step(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({
        "determine_intent": ["generate", "approve", "approve", "generate", "generate", "generate", "generate"],
        "extract_requirements": FOREX_EXTRACT,
        "generate_blueprint": json.dumps(BLUEPRINT),
        "generate_component": COMPONENT_REPLY,
    })

    statuses = []
    for message in ("Forex bot please", "Yes", "Approved", "Go", "Next", "Next", "Next"):
        await send_chat_message(engine, USER_ID, PROJECT_ID, message)
        statuses.append(project_repo.rows[PROJECT_ID]["status"])

    assert statuses == [
        "requirements_completed",
        "blueprint_generated",
        "blueprint_approved",
        "component_generation",
        "component_generation",
        "completed",
        "completed",
    ]
    stored = project_repo.rows[PROJECT_ID]["components"]
    assert [c["status"] for c in stored] == ["completed", "completed"]
