from chat_api.models import BROADCAST_TARGET, Message
from chat_api.visibility import is_visible


def make(sender, to, kind):
    return Message(sender=sender, to=to, text="hi", kind=kind, time="12:00:00")


class TestIsVisible:
    def test_private_reaches_sender_and_recipient_only(self):
        msg = make("a", "b", "private")
        assert is_visible(msg, "a")
        assert is_visible(msg, "b")
        assert not is_visible(msg, "d")

    def test_broadcast_kind_is_public_whatever_the_recipient(self):
        msg = make("a", "c", "broadcast")
        assert is_visible(msg, "b")
        assert is_visible(msg, "d")

    def test_addressed_to_everyone(self):
        msg = make("a", BROADCAST_TARGET, "private")
        assert is_visible(msg, "zed")

    def test_status_notices_are_public(self):
        msg = make("a", BROADCAST_TARGET, "status")
        assert is_visible(msg, "b")
