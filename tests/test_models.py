from wcferry import Message

from conftest import text_message

AT_XML = "<msgsource><atuserlist><![CDATA[,wxid_me,wxid_other]]></atuserlist></msgsource>"


def test_properties_follow_the_wire_message():
    raw = text_message("hi", is_group=True, roomid="1@chatroom", thumb="t.jpg", extra="e.dat", sign="abc")
    msg = Message(raw)
    assert msg.raw is raw
    assert (msg.id, msg.type, msg.ts) == (1, 1, 1700000000)
    assert msg.room_id == "1@chatroom"
    assert msg.sender == "wxid_sender"
    assert msg.content == "hi"
    assert (msg.thumb, msg.extra, msg.sign) == ("t.jpg", "e.dat", "abc")
    assert msg.from_group()
    assert not msg.from_self()


def test_is_at_when_mentioned_in_a_group():
    msg = Message(text_message("@me hello", is_group=True, roomid="1@chatroom", xml=AT_XML))
    assert msg.is_at("wxid_me")
    assert not msg.is_at("wxid_nobody")


def test_is_at_ignores_direct_messages():
    msg = Message(text_message("@me hello", is_group=False, xml=AT_XML))
    assert not msg.is_at("wxid_me")


def test_is_at_ignores_at_all():
    for content in ("@所有人 meeting", "@all meeting", "@All meeting"):
        msg = Message(text_message(content, is_group=True, roomid="1@chatroom", xml=AT_XML))
        assert not msg.is_at("wxid_me")


def test_repr_names_the_origin():
    msg = Message(text_message("hi", is_group=True, roomid="1@chatroom"))
    assert "wxid_sender@1@chatroom" in repr(msg)
