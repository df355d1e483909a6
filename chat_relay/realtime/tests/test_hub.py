import pytest
from asgiref.sync import async_to_sync

from chat_relay.chat.models import Message
from chat_relay.chat.tests.factories import create_user
from chat_relay.realtime import hub as hub_module
from chat_relay.realtime.hub import RelayHub

from .fakes import RecordingEmitter


def run(hub, event, sid, data):
    async_to_sync(hub.dispatch)(event, sid, data)


def errors_for(emitter, sid):
    return [data["message"] for event, data in emitter.to(sid) if event == "error"]


class TestConnectionLifecycle:
    def setup_method(self):
        self.emitter = RecordingEmitter()
        self.hub = RelayHub(self.emitter)

    def test_connect_tells_client_its_connection_id(self):
        async_to_sync(self.hub.connect)("sid-a")
        assert self.emitter.to("sid-a") == [("me", {"connectionId": "sid-a"})]

    def test_join_broadcasts_presence_to_others(self):
        run(self.hub, "join", "sid-a", {"userId": 1, "fullName": "Alice"})

        assert self.hub.presence.lookup(1) == "sid-a"
        [(payload, kwargs)] = self.emitter.events("presence:online")
        assert payload == {"userId": 1, "connectionId": "sid-a"}
        assert kwargs == {"skip_sid": "sid-a"}

    def test_repeated_join_is_not_rebroadcast(self):
        run(self.hub, "join", "sid-a", {"userId": 1})
        run(self.hub, "join", "sid-a", {"userId": 1})

        assert len(self.emitter.events("presence:online")) == 1

    def test_join_from_new_connection_replaces_old(self):
        run(self.hub, "join", "sid-a", {"userId": 1})
        run(self.hub, "join", "sid-b", {"userId": 1})

        assert self.hub.presence.lookup(1) == "sid-b"
        # The stale connection closing does not take the user offline
        async_to_sync(self.hub.disconnect)("sid-a")
        assert self.emitter.events("presence:offline") == []
        assert self.hub.presence.lookup(1) == "sid-b"

    def test_join_enters_user_room(self):
        run(self.hub, "join", "sid-a", {"userId": 1})
        run(self.hub, "join", "sid-b", {"userId": 1})

        # Only the latest connection receives events addressed to the user
        assert self.emitter.rooms["user:1"] == {"sid-b"}

    def test_connection_switching_user_takes_previous_offline(self):
        run(self.hub, "join", "sid-a", {"userId": 1})
        self.emitter.clear()

        run(self.hub, "join", "sid-a", {"userId": 2})

        assert self.hub.presence.lookup(1) is None
        assert self.hub.presence.lookup(2) == "sid-a"
        [(offline, kwargs)] = self.emitter.events("presence:offline")
        assert offline == {"userId": 1, "connectionId": "sid-a"}
        assert kwargs == {"skip_sid": "sid-a"}
        [(online, _)] = self.emitter.events("presence:online")
        assert online == {"userId": 2, "connectionId": "sid-a"}
        assert self.emitter.rooms["user:1"] == set()
        assert self.emitter.rooms["user:2"] == {"sid-a"}

    def test_disconnect_broadcasts_offline(self):
        run(self.hub, "join", "sid-a", {"userId": 1})

        async_to_sync(self.hub.disconnect)("sid-a")

        assert self.hub.presence.lookup(1) is None
        [(payload, kwargs)] = self.emitter.events("presence:offline")
        assert payload == {"userId": 1, "connectionId": "sid-a"}
        assert kwargs == {"skip_sid": "sid-a"}

    def test_disconnect_of_unjoined_connection_is_silent(self):
        async_to_sync(self.hub.disconnect)("sid-x")
        assert self.emitter.emitted == []

    def test_authenticated_connection_cannot_join_as_someone_else(self):
        async_to_sync(self.hub.connect)("sid-a", 1)

        run(self.hub, "join", "sid-a", {"userId": 2})

        assert errors_for(self.emitter, "sid-a") == ["Cannot join as another user"]
        assert self.hub.presence.lookup(2) is None

    def test_invalid_payload_is_reported_to_sender_only(self):
        run(self.hub, "join", "sid-a", {"fullName": "nobody"})

        [(event, data, kwargs)] = self.emitter.emitted
        assert event == "error"
        assert data["message"].startswith("userId:")
        assert kwargs == {"to": "sid-a"}


@pytest.mark.django_db(transaction=True)
class TestMessaging:
    def setup_method(self):
        self.alice = create_user("alice", name="Alice")
        self.bob = create_user("bob")
        self.emitter = RecordingEmitter()
        self.hub = RelayHub(self.emitter)
        run(self.hub, "join", "sid-a", {"userId": self.alice.pk})
        self.emitter.clear()

    def test_send_to_online_receiver(self):
        run(self.hub, "join", "sid-b", {"userId": self.bob.pk})
        self.emitter.clear()

        run(
            self.hub,
            "message:send",
            "sid-a",
            {"targetUserId": self.bob.pk, "text": "hi bob"},
        )

        [(received, kwargs)] = self.emitter.events("message:receive")
        assert kwargs == {"to": f"user:{self.bob.pk}"}
        assert self.emitter.to("sid-b") == [("message:receive", received)]
        assert received["text"] == "hi bob"
        assert received["senderName"] == "Alice"
        [(event, sent)] = self.emitter.to("sid-a")
        assert event == "message:sent"
        assert sent["id"] == received["id"]
        assert sent["targetUserId"] == self.bob.pk

    def test_offline_receiver_gets_it_from_history(self):
        run(
            self.hub,
            "message:send",
            "sid-a",
            {"targetUserId": self.bob.pk, "text": "are you there?"},
        )
        assert [e for e, _ in self.emitter.to("sid-a")] == ["message:sent"]

        run(self.hub, "join", "sid-b", {"userId": self.bob.pk})
        run(self.hub, "history:request", "sid-b", {"targetUserId": self.alice.pk})

        [(event, payload)] = self.emitter.to("sid-b")
        assert event == "history:result"
        assert [m["text"] for m in payload["messages"]] == ["are you there?"]

    def test_empty_message_is_rejected(self):
        run(self.hub, "message:send", "sid-a", {"targetUserId": self.bob.pk})

        assert errors_for(self.emitter, "sid-a") == ["A message needs text or a file"]
        assert Message.objects.count() == 0

    def test_unknown_receiver(self):
        run(self.hub, "message:send", "sid-a", {"targetUserId": 999_999, "text": "x"})
        assert errors_for(self.emitter, "sid-a") == ["Unknown user"]

    def test_cannot_send_as_another_user(self):
        run(
            self.hub,
            "message:send",
            "sid-a",
            {"targetUserId": self.bob.pk, "senderId": self.bob.pk, "text": "x"},
        )
        assert errors_for(self.emitter, "sid-a") == [
            "Payload user does not match this connection"
        ]

    def test_anonymous_connection_must_name_sender(self):
        run(self.hub, "message:send", "sid-z", {"targetUserId": self.bob.pk, "text": "x"})
        assert errors_for(self.emitter, "sid-z") == ["userId is required"]

    def test_reaction_reaches_both_participants(self):
        run(self.hub, "join", "sid-b", {"userId": self.bob.pk})
        run(self.hub, "message:send", "sid-a", {"targetUserId": self.bob.pk, "text": "x"})
        message_id = Message.objects.get().pk
        self.emitter.clear()

        run(
            self.hub,
            "reaction:toggle",
            "sid-b",
            {"messageId": message_id, "emoji": "👍"},
        )

        updates = self.emitter.events("reaction:updated")
        assert sorted(kw["to"] for _, kw in updates) == sorted(
            [f"user:{self.alice.pk}", f"user:{self.bob.pk}"]
        )
        assert [e for e, _ in self.emitter.to("sid-a")] == ["reaction:updated"]
        assert [e for e, _ in self.emitter.to("sid-b")] == ["reaction:updated"]
        payload = updates[0][0]
        assert payload["action"] == "added"
        assert payload["reactions"][0]["userId"] == self.bob.pk

    def test_edit_by_non_owner_is_denied(self):
        run(self.hub, "join", "sid-b", {"userId": self.bob.pk})
        run(self.hub, "message:send", "sid-a", {"targetUserId": self.bob.pk, "text": "x"})
        message_id = Message.objects.get().pk
        self.emitter.clear()

        run(
            self.hub,
            "edit:request",
            "sid-b",
            {"messageId": message_id, "newText": "mine now"},
        )

        assert errors_for(self.emitter, "sid-b") == ["You can only edit your own messages"]
        assert self.emitter.events("edit:applied") == []

    def test_edit_and_delete_by_owner(self, settings):
        run(self.hub, "message:send", "sid-a", {"targetUserId": self.bob.pk, "text": "x"})
        message_id = Message.objects.get().pk
        self.emitter.clear()

        run(self.hub, "edit:request", "sid-a", {"messageId": message_id, "newText": "y"})
        run(self.hub, "delete:request", "sid-a", {"messageId": message_id})

        # Bob is offline: his room is empty, only the sender is notified
        [(first, edited), (second, deleted)] = self.emitter.to("sid-a")
        assert (first, second) == ("edit:applied", "delete:applied")
        assert edited["text"] == "y"
        assert edited["isEdited"] is True
        assert deleted["text"] == settings.CHAT_DELETED_PLACEHOLDER
        assert deleted["isDeleted"] is True
        assert self.emitter.rooms.get(f"user:{self.bob.pk}", set()) == set()

    def test_read_receipt_goes_to_sender(self):
        run(self.hub, "join", "sid-b", {"userId": self.bob.pk})
        run(self.hub, "message:send", "sid-a", {"targetUserId": self.bob.pk, "text": "x"})
        message_id = Message.objects.get().pk
        self.emitter.clear()

        run(self.hub, "read:mark", "sid-b", {"messageIds": [message_id]})

        assert self.emitter.to("sid-a") == [
            ("read:updated", {"messageIds": [message_id], "readerId": self.bob.pk})
        ]

    def test_unexpected_failure_uses_generic_message(self, monkeypatch):
        async def broken(*args):
            msg = "database exploded"
            raise RuntimeError(msg)

        monkeypatch.setattr(hub_module, "_load_history", broken)

        run(self.hub, "history:request", "sid-a", {"targetUserId": self.bob.pk})

        assert errors_for(self.emitter, "sid-a") == ["Failed to load chat history"]


class TestCallRooms:
    def setup_method(self):
        self.emitter = RecordingEmitter()
        self.hub = RelayHub(self.emitter)

    def test_waiter_then_caller(self):
        run(self.hub, "room:join", "sid-a", {"meetingId": "m1", "displayName": "Ann"})
        run(
            self.hub,
            "room:join",
            "sid-b",
            {"meetingId": "m1", "displayName": "Ben", "locale": "de-DE"},
        )

        assert self.emitter.to("sid-a") == [
            ("room:role", {"meetingId": "m1", "role": "waiter"}),
            (
                "peer:incoming",
                {
                    "meetingId": "m1",
                    "connectionId": "sid-b",
                    "displayName": "Ben",
                    "locale": "de-DE",
                },
            ),
        ]
        [(event, role)] = self.emitter.to("sid-b")
        assert event == "room:role"
        assert role["role"] == "caller"
        assert role["peer"]["connectionId"] == "sid-a"

    def test_third_joiner_gets_room_full(self):
        run(self.hub, "room:join", "sid-a", {"meetingId": "m1"})
        run(self.hub, "room:join", "sid-b", {"meetingId": "m1"})

        run(self.hub, "room:join", "sid-c", {"meetingId": "m1"})

        assert errors_for(self.emitter, "sid-c") == ["Room is full"]

    def test_display_name_defaults_to_presence_name(self):
        run(self.hub, "join", "sid-a", {"userId": 1, "fullName": "Ann"})
        run(self.hub, "room:join", "sid-a", {"meetingId": "m1"})
        run(self.hub, "room:join", "sid-b", {"meetingId": "m1"})

        [(_, role)] = self.emitter.to("sid-b")
        assert role["peer"]["displayName"] == "Ann"

    def test_disconnect_notifies_peer(self):
        run(self.hub, "room:join", "sid-a", {"meetingId": "m1"})
        run(self.hub, "room:join", "sid-b", {"meetingId": "m1"})
        self.emitter.clear()

        async_to_sync(self.hub.disconnect)("sid-a")

        assert self.emitter.to("sid-b") == [
            ("peer:left", {"meetingId": "m1", "connectionId": "sid-a"})
        ]
        assert self.hub.rooms.members("m1")[0].connection_id == "sid-b"

    def test_signaling_through_hub(self):
        run(self.hub, "join", "sid-b", {"userId": 2})
        self.emitter.clear()

        run(
            self.hub,
            "signal:offer",
            "sid-a",
            {"targetId": 2, "payload": {"sdp": "v=0"}, "callId": "c-9"},
        )
        run(self.hub, "signal:end", "sid-b", {"targetId": "sid-a", "callId": "c-9"})

        [(event, offer)] = self.emitter.to("sid-b")
        assert event == "signal:offer"
        assert offer["fromUserId"] is None
        assert offer["fromConnectionId"] == "sid-a"
        assert self.emitter.to("sid-a") == [
            ("signal:end", {"callId": "c-9", "endedBy": "sid-b"})
        ]
