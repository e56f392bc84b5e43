"""Tests for the entity store: surveys, folders, responses and sync"""
import random

import pytest

from socialvox.errors import NetworkError, NotFoundError, ValidationError
from socialvox.network import SimulatedNetwork
from socialvox.schemas import (
    Answer,
    FolderCreate,
    FolderUpdate,
    ResponseCreate,
    SurveyCreate,
    SurveyUpdate,
)
from socialvox.store import EntityStore

from conftest import free, mc

AUDIO = "data:audio/webm;base64,AAAA"


async def make_survey(store, folder_id=None, assigned_to=("surveyor-1",), questions=None):
    return await store.create_survey(
        SurveyCreate(
            title="Movilidad urbana",
            questions=questions
            or [
                mc("¿Usa transporte público?", ["Yes", "No"], qid="q1"),
                free("¿Qué línea?", qid="q2", depends_on="q1", show_when=["Yes"]),
            ],
            assigned_to=list(assigned_to),
            folder_id=folder_id,
        ),
        created_by="admin-1",
    )


def answer_no():
    return [Answer(question_id="q1", selected_option="No")]


@pytest.mark.asyncio
async def test_create_and_get_survey(store):
    survey = await make_survey(store)
    assert store.get_survey(survey.id).title == "Movilidad urbana"
    assert store.revision == 1
    with pytest.raises(NotFoundError):
        store.get_survey("missing")


@pytest.mark.asyncio
async def test_create_survey_rejects_invalid_questions(store):
    with pytest.raises(ValidationError):
        await make_survey(store, questions=[mc("Solo una", ["A"])])
    assert store.list_surveys() == []


@pytest.mark.asyncio
async def test_update_survey_keeps_unset_fields(store):
    survey = await make_survey(store)
    updated = await store.update_survey(survey.id, SurveyUpdate(is_active=False))
    assert updated.is_active is False
    assert updated.title == survey.title
    assert len(updated.questions) == 2


@pytest.mark.asyncio
async def test_delete_question_clears_dependents(store):
    survey = await make_survey(store)
    updated = await store.delete_question(survey.id, "q1")
    assert [q.id for q in updated.questions] == ["q2"]
    assert updated.questions[0].depends_on is None
    assert updated.questions[0].show_when is None


@pytest.mark.asyncio
async def test_surveys_for_surveyor_only_active_and_assigned(store):
    mine = await make_survey(store)
    other = await make_survey(store, assigned_to=["surveyor-2"])
    inactive = await make_survey(store)
    await store.update_survey(inactive.id, SurveyUpdate(is_active=False))

    assert [s.id for s in store.surveys_for_surveyor("surveyor-1")] == [mine.id]
    assert [s.id for s in store.surveys_for_surveyor("surveyor-2")] == [other.id]


@pytest.mark.asyncio
async def test_folder_delete_is_transitive(store):
    """Test: deleting F1 removes its child F2 and detaches both surveys"""
    f1 = await store.create_folder(FolderCreate(name="F1"), created_by="admin-1")
    f2 = await store.create_folder(FolderCreate(name="F2", parent_id=f1.id), created_by="admin-1")
    s1 = await make_survey(store, folder_id=f1.id)
    s2 = await make_survey(store, folder_id=f2.id)

    removed, detached = await store.delete_folder(f1.id)

    assert removed == [f1.id, f2.id]
    assert set(detached) == {s1.id, s2.id}
    assert store.list_folders() == []
    assert store.get_survey(s1.id).folder_id is None
    assert store.get_survey(s2.id).folder_id is None


@pytest.mark.asyncio
async def test_folder_delete_keeps_unrelated_folders(store):
    f1 = await store.create_folder(FolderCreate(name="F1"), created_by="admin-1")
    other = await store.create_folder(FolderCreate(name="Otra"), created_by="admin-1")
    await store.create_folder(FolderCreate(name="F1a", parent_id=f1.id), created_by="admin-1")

    await store.delete_folder(f1.id)

    assert [f.id for f in store.list_folders()] == [other.id]


@pytest.mark.asyncio
async def test_folder_cannot_become_its_own_ancestor(store):
    f1 = await store.create_folder(FolderCreate(name="F1"), created_by="admin-1")
    f2 = await store.create_folder(FolderCreate(name="F2", parent_id=f1.id), created_by="admin-1")

    with pytest.raises(ValidationError):
        await store.update_folder(f1.id, FolderUpdate(parent_id=f2.id))
    with pytest.raises(ValidationError):
        await store.update_folder(f1.id, FolderUpdate(parent_id=f1.id))
    assert store.get_folder(f1.id).parent_id is None


@pytest.mark.asyncio
async def test_create_folder_requires_existing_parent(store):
    with pytest.raises(NotFoundError):
        await store.create_folder(FolderCreate(name="Huérfana", parent_id="nope"), created_by="a")


@pytest.mark.asyncio
async def test_assign_folder_overwrites_direct_surveys_only(store):
    parent = await store.create_folder(FolderCreate(name="P"), created_by="admin-1")
    child = await store.create_folder(FolderCreate(name="C", parent_id=parent.id), created_by="a")
    direct = await make_survey(store, folder_id=parent.id, assigned_to=["old"])
    nested = await make_survey(store, folder_id=child.id, assigned_to=["old"])

    updated = await store.assign_folder_to_surveyors(parent.id, ["s1", "s2", "s1"])

    assert [s.id for s in updated] == [direct.id]
    assert store.get_survey(direct.id).assigned_to == ["s1", "s2"]
    assert store.get_survey(nested.id).assigned_to == ["old"]


@pytest.mark.asyncio
async def test_assign_survey_to_folder_and_back(store):
    folder = await store.create_folder(FolderCreate(name="F"), created_by="admin-1")
    survey = await make_survey(store)
    moved = await store.assign_survey_to_folder(survey.id, folder.id)
    assert store.surveys_in_folder(folder.id) == [moved]
    back = await store.assign_survey_to_folder(survey.id, None)
    assert back.folder_id is None


@pytest.mark.asyncio
async def test_submit_offline_queues_response(store, connectivity, uplink):
    survey = await make_survey(store)
    connectivity.set_online(False)

    response = await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )

    assert response.synced_to_server is False
    assert store.pending_count == 1
    assert await uplink.count() == 0


@pytest.mark.asyncio
async def test_submit_online_pushes_immediately(store, uplink):
    survey = await make_survey(store)
    response = await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )
    assert response.synced_to_server is True
    assert store.pending_count == 0
    assert await uplink.count() == 1


@pytest.mark.asyncio
async def test_submit_requires_audio(store):
    survey = await make_survey(store)
    with pytest.raises(ValidationError) as exc_info:
        await store.submit_response(
            "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no())
        )
    assert "audio_recording" in exc_info.value.fields
    response = await store.submit_response(
        "surveyor-1",
        ResponseCreate(survey_id=survey.id, answers=answer_no()),
        require_audio=False,
    )
    assert response.audio_recording is None


@pytest.mark.asyncio
async def test_sync_flips_pending_without_new_responses(store, connectivity, uplink):
    """Test: one unsynced response, online, sync flips it and creates nothing"""
    survey = await make_survey(store)
    connectivity.set_online(False)
    response = await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )
    connectivity.set_online(True)

    assert await store.sync_responses() == 1

    responses = store.responses_for_survey(survey.id)
    assert [r.id for r in responses] == [response.id]
    assert responses[0].synced_to_server is True
    assert await uplink.count() == 1


@pytest.mark.asyncio
async def test_sync_is_idempotent(store, connectivity, uplink):
    survey = await make_survey(store)
    connectivity.set_online(False)
    for _ in range(2):
        await store.submit_response(
            "surveyor-1",
            ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO),
        )
    connectivity.set_online(True)

    assert await store.sync_responses() == 2
    first = store.snapshot()
    assert await store.sync_responses() == 0

    assert store.snapshot() == first
    assert await uplink.count() == 2


@pytest.mark.asyncio
async def test_sync_offline_is_a_no_op(store, connectivity):
    survey = await make_survey(store)
    connectivity.set_online(False)
    await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )
    assert await store.sync_responses() == 0
    assert store.pending_count == 1


@pytest.mark.asyncio
async def test_failed_round_trip_leaves_state_untouched(connectivity, uplink):
    flaky = SimulatedNetwork(0.0, 0.0, failure_rate=1.0, rng=random.Random(7))
    store = EntityStore(SimulatedNetwork.instant(), connectivity, uplink)
    survey = await make_survey(store)
    connectivity.set_online(False)
    await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )
    connectivity.set_online(True)
    before = store.snapshot()
    revision = store.revision

    store._network = flaky
    with pytest.raises(NetworkError):
        await store.update_survey(survey.id, SurveyUpdate(title="Otro título"))
    with pytest.raises(NetworkError):
        await store.sync_responses()

    assert store.snapshot() == before
    assert store.revision == revision
    assert store.pending_count == 1
    assert await uplink.count() == 0


@pytest.mark.asyncio
async def test_online_submit_that_fails_is_queued(connectivity, uplink):
    """Test: a completed interview survives a failed push and syncs later"""
    store = EntityStore(SimulatedNetwork.instant(), connectivity, uplink)
    survey = await make_survey(store)
    store._network = SimulatedNetwork(0.0, 0.0, failure_rate=1.0, rng=random.Random(3))

    response = await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )

    assert response.synced_to_server is False
    assert store.pending_count == 1
    assert await uplink.count() == 0

    store._network = SimulatedNetwork.instant()
    assert await store.sync_responses() == 1
    assert await uplink.count() == 1


@pytest.mark.asyncio
async def test_pending_listener_sees_changes(store, connectivity):
    seen = []
    unsubscribe = store.subscribe(seen.append)
    survey = await make_survey(store)
    connectivity.set_online(False)
    await store.submit_response(
        "surveyor-1", ResponseCreate(survey_id=survey.id, answers=answer_no(), audio_recording=AUDIO)
    )
    connectivity.set_online(True)
    await store.sync_responses()
    unsubscribe()

    assert seen == [1, 0]
