"""Tests for the chat service layer."""

import json
from uuid import UUID

import pytest

from finbuild.errors import BadRequestError, ProjectNotFoundError
from finbuild.services import chat_service

from tests.conftest import OTHER_USER_ID, PROJECT_ID, USER_ID
from tests.fakes import seed_marker_templates


@pytest.mark.asyncio
async def test_send_saves_when_project_changes(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({
        "determine_intent": "generate",
        "extract_requirements": json.dumps({"name": "Scalper", "techStack": "Rust"}),
    })

    result = await chat_service.send_chat_message(engine, USER_ID, PROJECT_ID, "  A Rust scalper  ")

    assert result["update_project"] is True
    assert result["project_data"]["name"] == "Scalper"
    assert result["project_data"]["tech_stack"] == ["Rust"]
    assert result["next_phase"] is None
    assert len(project_repo.saved) == 1
    assert project_repo.rows[PROJECT_ID]["name"] == "Scalper"
    assert project_repo.rows[PROJECT_ID]["user_id"] == USER_ID


@pytest.mark.asyncio
async def test_send_does_not_save_plain_answers(engine, project_repo, gateway):
    await seed_marker_templates(engine.store)
    project_repo.put(PROJECT_ID, USER_ID)
    gateway.replies.update({"determine_intent": "query", "general_query": "Answer"})

    result = await chat_service.send_chat_message(engine, USER_ID, PROJECT_ID, "What is VWAP?")

    assert result == {
        "message": "Answer",
        "metadata": {"type": "general_response"},
        "update_project": False,
        "project_data": None,
        "next_phase": None,
    }
    assert project_repo.saved == []


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", "x" * (chat_service.MAX_MESSAGE_LENGTH + 1)])
async def test_send_rejects_bad_messages(engine, gateway, message):
    with pytest.raises(BadRequestError):
        await chat_service.send_chat_message(engine, USER_ID, PROJECT_ID, message)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_send_to_foreign_project(engine, project_repo):
    project_repo.put(PROJECT_ID, OTHER_USER_ID)
    with pytest.raises(ProjectNotFoundError):
        await chat_service.send_chat_message(engine, USER_ID, PROJECT_ID, "hi")


@pytest.mark.asyncio
async def test_create_get_and_list_projects(engine):
    created = await chat_service.create_project(engine, USER_ID, name="Arb bot")
    assert created["status"] == "created"
    assert created["user_id"] == str(USER_ID)

    fetched = await chat_service.get_project(engine, USER_ID, UUID(created["id"]))
    assert fetched["name"] == "Arb bot"

    assert [p["id"] for p in await chat_service.list_projects(engine, USER_ID)] == [created["id"]]
    assert await chat_service.list_projects(engine, OTHER_USER_ID) == []
