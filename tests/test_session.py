from __future__ import annotations

from conversation_history.history import CURRENT_KEY
from conversation_history.kv import InMemoryStore
from conversation_history.lifecycle import ACTIVE_KEY
from conversation_history.session import build_session
from conversation_history.sources import ChatFeed, TranscriptionFeed

from conftest import TickingClock


def test_feeds_drive_merge_and_persistence(store, clock):
    session = build_session(store=store, clock=clock)
    session.transcription.push("seg-1", "Hello ", timestamp=10, speaker="alice")
    session.transcription.push("seg-1", "there", timestamp=99, speaker="alice")
    session.transcription.push("seg-2", "Hi!", timestamp=20, speaker="agent", is_agent=True)

    merged = session.get_merged_messages()
    assert [(m.id, m.content, m.role) for m in merged] == [
        ("seg-1", "Hello there", "user"),
        ("seg-2", "Hi!", "assistant"),
    ]
    assert session.history.load_current() == merged
    assert session.history.load_conversation(session.active_id) == merged

    (summary,) = session.get_conversation_list()
    assert summary.id == session.active_id
    assert summary.title == "Hello there"
    assert summary.preview == "Hi!"
    assert summary.message_count == 2


def test_retention_after_120_messages(store):
    clock = TickingClock(start=1_000)
    session = build_session(store=store, clock=clock)
    for i in range(120):
        session.chat.receive(f"msg {i}", sender="alice", timestamp=5_000 + i, message_id=f"c{i}")

    stored = session.history.load_current()
    assert len(stored) == 50
    assert [m.id for m in stored] == [f"c{i}" for i in range(70, 120)]
    assert session.get_conversation_list()[0].message_count == 120


def test_history_survives_restart(store, clock):
    first = build_session(store=store, clock=clock)
    first.send("remember me")
    active = first.active_id
    first.close()

    second = build_session(store=store, clock=clock)
    assert second.active_id == active
    assert [m.content for m in second.get_merged_messages()] == ["remember me"]
    assert second.boundary.is_historical(second.get_merged_messages()[0])


def test_empty_merge_is_never_persisted(store, clock):
    store.set(CURRENT_KEY, "[]")
    session = build_session(store=store, clock=clock)
    session.transcription.reset()
    assert session.get_merged_messages() == []
    assert session.get_conversation_list() == []


def test_corrupt_current_slot_does_not_break_startup(store, clock):
    store.set(ACTIVE_KEY, '"conversation_1"')
    store.set(CURRENT_KEY, "{{{")
    session = build_session(store=store, clock=clock)
    assert session.active_id == "conversation_1"
    assert session.get_merged_messages() == []
    session.send("still works")
    assert len(session.get_merged_messages()) == 1
    assert len(session.history.load_current()) == 1


def test_create_conversation_leaves_live_messages_behind(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("first conversation")
    old = session.active_id

    new = session.create_conversation()
    assert new != old
    assert session.get_merged_messages() == []
    assert session.get_conversation_list()[0].id == old

    session.send("second conversation")
    assert [m.content for m in session.get_merged_messages()] == ["second conversation"]
    assert [c.id for c in session.get_conversation_list()] == [new, old]
    assert [m.content for m in session.history.load_conversation(old)] == ["first conversation"]


def test_select_conversation_loads_its_history(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("in A")
    a = session.active_id
    session.create_conversation()
    session.send("in B")

    assert session.select_conversation(a) is True
    assert session.active_id == a
    assert [m.content for m in session.get_merged_messages()] == ["in A"]
    assert [m.content for m in session.history.load_current()] == ["in A"]


def test_select_unknown_falls_back_to_new(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("hello")
    before = session.active_id

    assert session.select_conversation("ghost") is False
    assert session.active_id not in (before, "ghost")
    assert session.get_merged_messages() == []


def test_delete_active_switches_to_remaining(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("in Y")
    y = session.active_id
    session.create_conversation()
    session.send("in X")
    x = session.active_id

    assert session.delete_conversation(x) == y
    assert [m.content for m in session.get_merged_messages()] == ["in Y"]
    assert [c.id for c in session.get_conversation_list()] == [y]


def test_delete_last_starts_fresh(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("only")
    x = session.active_id

    fresh = session.delete_conversation(x)
    assert fresh != x
    assert session.get_conversation_list() == []
    assert session.get_merged_messages() == []
    assert session.index.get(x) is None


def test_clear_conversation(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("forget this")
    active = session.active_id

    assert session.clear_conversation() == active
    assert session.get_merged_messages() == []
    assert session.get_conversation_list() == []


def test_evicted_summaries_drop_their_snapshots(store, clock):
    session = build_session({"index": {"max_conversations": 2}}, store=store, clock=clock)
    ids = []
    for i in range(3):
        if i:
            session.create_conversation()
        session.send(f"conv {i}")
        ids.append(session.active_id)

    assert [c.id for c in session.get_conversation_list()] == [ids[2], ids[1]]
    assert not session.history.has_conversation(ids[0])


def test_chat_transport_failure_is_reported_not_raised(store, clock):
    def transport(text):
        raise ConnectionError("room closed")

    session = build_session(store=store, clock=clock, chat=ChatFeed(transport=transport, clock=clock))
    outcome = session.send("hi")
    assert outcome.ok is False
    assert "room closed" in outcome.error
    assert [m.content for m in session.get_merged_messages()] == ["hi"]


def test_disabled_storage_keeps_live_session_running(clock):
    session = build_session(store=InMemoryStore(enabled=False), clock=clock)
    session.send("hello")
    session.transcription.push("s1", "spoken", timestamp=clock(), speaker="alice")
    assert len(session.get_merged_messages()) == 2
    assert session.get_conversation_list() == []


def test_close_unsubscribes(store, clock):
    feed = TranscriptionFeed()
    session = build_session(store=store, clock=clock, transcription=feed)
    session.close()
    feed.push("s1", "late", timestamp=1, speaker="alice")
    assert session.get_merged_messages() == []


def test_selecting_a_long_conversation_returns_every_message(store):
    session = build_session(store=store, clock=TickingClock(start=1_000))
    for i in range(120):
        session.chat.receive(f"msg {i}", sender="alice", timestamp=5_000 + i, message_id=f"c{i}")
    first = session.active_id
    session.create_conversation()

    assert session.select_conversation(first) is True
    merged = session.get_merged_messages()
    assert len(merged) == 120
    assert merged[0].id == "c0"
    assert session.index.get(first).message_count == len(merged)
    assert len(session.history.load_current()) == 50


def test_select_stale_summary_drops_it(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("kept")
    session.index.upsert("stale", [session.get_merged_messages()[0]])

    assert session.select_conversation("stale") is False
    assert session.index.get("stale") is None
    assert "stale" not in [c.id for c in session.get_conversation_list()]


def test_switching_conversations_empties_the_feeds(store, clock):
    session = build_session(store=store, clock=clock)
    session.send("typed")
    session.transcription.push("s1", "spoken", timestamp=clock(), speaker="alice")

    session.create_conversation()
    assert session.chat.snapshot() == []
    assert session.transcription.snapshot() == []

    session.send("next")
    assert [m.content for m in session.get_merged_messages()] == ["next"]
