import threading
import time
from datetime import timedelta

import pytest

from agent.core.errors import NotFoundError
from agent.core.memory import MemoryStore
from agent.core.models import ConversationUpdate, Message


def _msg(role, content):
    return Message(role=role, content=content, timestamp="09:30 AM")


def test_create_then_get_round_trips_fields(store):
    messages = [_msg("user", "Hi"), _msg("ai", "Hello! Looking for a pen?")]
    created = store.create_conversation("Demo", "Sell pens", messages=messages, is_active=True)

    fetched = store.get_conversation(created.id)
    assert fetched is not None
    assert fetched.title == "Demo"
    assert fetched.sales_prompt == "Sell pens"
    assert [m.content for m in fetched.messages] == ["Hi", "Hello! Looking for a pen?"]
    assert [m.role for m in fetched.messages] == ["user", "ai"]
    assert fetched.is_active is True


def test_create_defaults_messages_and_active_flag(store, clock):
    created = store.create_conversation("Demo", "Sell pens")
    assert created.messages == []
    assert created.is_active is False
    assert created.created_at == clock.now
    assert created.updated_at == clock.now


def test_create_generates_distinct_ids(store):
    a = store.create_conversation("A", "Sell pens")
    b = store.create_conversation("B", "Sell pens")
    assert a.id != b.id
    assert [c.id for c in store.list_conversations()] == [a.id, b.id]


def test_get_unknown_is_none(store):
    assert store.get_conversation("missing") is None


def test_partial_update_preserves_unspecified_fields(store, clock):
    created = store.create_conversation("Demo", "Sell pens", messages=[_msg("user", "Hi")])
    clock.advance()

    updated = store.update_conversation(created.id, {"title": "Renamed"})

    assert updated.title == "Renamed"
    assert updated.sales_prompt == "Sell pens"
    assert [m.content for m in updated.messages] == ["Hi"]
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at


def test_update_activate_scenario(store, clock):
    created = store.create_conversation("Demo", "Sell pens")
    clock.advance()

    updated = store.update_conversation(created.id, ConversationUpdate(is_active=True))

    assert updated.id == created.id
    assert updated.sales_prompt == "Sell pens"
    assert updated.is_active is True
    assert updated.updated_at > created.updated_at


def test_update_accepts_camel_case_mapping(store):
    created = store.create_conversation("Demo", "Sell pens")
    updated = store.update_conversation(created.id, {"salesPrompt": "Sell notebooks"})
    assert updated.sales_prompt == "Sell notebooks"


def test_update_with_explicit_none_does_not_clear(store):
    created = store.create_conversation("Demo", "Sell pens", messages=[_msg("user", "Hi")])
    updated = store.update_conversation(created.id, {"salesPrompt": None, "messages": None})
    assert updated.sales_prompt == "Sell pens"
    assert len(updated.messages) == 1


def test_update_unknown_raises_and_leaves_store_alone(store):
    created = store.create_conversation("Demo", "Sell pens")
    before = store.list_conversations()

    with pytest.raises(NotFoundError):
        store.update_conversation("missing", {"title": "X"})

    assert store.list_conversations() == before
    assert store.get_conversation(created.id).title == "Demo"


def test_updated_at_advances_even_when_clock_stands_still(store):
    created = store.create_conversation("Demo", "Sell pens")
    first = store.update_conversation(created.id, {"title": "One"})
    second = store.update_conversation(created.id, {"title": "Two"})
    assert first.updated_at > created.updated_at
    assert second.updated_at > first.updated_at
    assert second.updated_at - created.updated_at == timedelta(microseconds=2)


def test_delete_removes_record(store):
    created = store.create_conversation("Demo", "Sell pens")
    store.delete_conversation(created.id)
    assert store.get_conversation(created.id) is None
    assert store.list_conversations() == []


def test_delete_unknown_is_noop(store):
    created = store.create_conversation("Demo", "Sell pens")
    store.delete_conversation("missing")
    assert [c.id for c in store.list_conversations()] == [created.id]


def test_returned_records_are_copies(store):
    created = store.create_conversation("Demo", "Sell pens")
    created.title = "Mutated"
    created.messages.append(_msg("user", "sneaky"))

    fetched = store.get_conversation(created.id)
    assert fetched.title == "Demo"
    assert fetched.messages == []


def test_export_shapes_transcript(store, clock):
    created = store.create_conversation("Demo", "Sell pens", messages=[_msg("user", "Hi")])
    exported = store.export_conversation(created.id)
    assert exported == {
        "title": "Demo",
        "salesPrompt": "Sell pens",
        "messages": [{"role": "user", "content": "Hi", "timestamp": "09:30 AM"}],
        "exportDate": clock.now.isoformat(),
    }


def test_export_unknown_raises(store):
    with pytest.raises(NotFoundError):
        store.export_conversation("missing")


def test_settings_defaults_on_fresh_store(store, clock):
    settings = store.get_settings()
    assert settings.gemini_api_key is None
    assert settings.voice_type == "Professional Female"
    assert settings.speech_speed == "1"
    assert settings.audio_quality == "High (48kHz)"
    assert settings.language_model == "Gemini Pro"
    assert settings.auto_save_conversations is True
    assert settings.voice_activity_detection is True
    assert settings.created_at == clock.now


def test_settings_singleton_keeps_identity(store):
    assert store.get_settings().id == store.get_settings().id


def test_save_settings_merges_single_field(store, clock):
    before = store.get_settings()
    clock.advance()

    store.save_settings({"voiceType": "Friendly Male"})
    after = store.get_settings()

    assert after.voice_type == "Friendly Male"
    assert after.id == before.id
    assert after.created_at == before.created_at
    assert after.updated_at > before.updated_at
    unchanged = before.model_dump(exclude={"voice_type", "updated_at"})
    assert after.model_dump(exclude={"voice_type", "updated_at"}) == unchanged


def test_save_settings_before_first_read_creates_defaults(clock):
    fresh = MemoryStore(clock=clock)
    saved = fresh.save_settings({"speechSpeed": "1.5"})
    assert saved.speech_speed == "1.5"
    assert saved.voice_type == "Professional Female"


def test_empty_api_key_clears_stored_key(store):
    store.save_settings({"geminiApiKey": "secret"})
    assert store.get_settings().gemini_api_key == "secret"
    store.save_settings({"geminiApiKey": ""})
    assert store.get_settings().gemini_api_key is None


def test_concurrent_first_reads_create_one_settings_record(clock):
    def slow_clock():
        time.sleep(0.05)
        return clock()

    fresh = MemoryStore(clock=slow_clock)
    barrier = threading.Barrier(2)
    ids = []

    def read():
        barrier.wait()
        ids.append(fresh.get_settings().id)

    threads = [threading.Thread(target=read) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ids) == 2
    assert ids[0] == ids[1]


def test_concurrent_updates_each_advance_updated_at(store):
    created = store.create_conversation("Demo", "Sell pens")
    barrier = threading.Barrier(4)

    def patch(n):
        barrier.wait()
        store.update_conversation(created.id, {"title": f"Title {n}"})

    threads = [threading.Thread(target=patch, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # the clock never moves, so each serialized update adds exactly one tick
    final = store.get_conversation(created.id)
    assert final.updated_at - created.updated_at == timedelta(microseconds=4)
