import asyncio
import os

import pytest

from wcferry import WcfCommandError, WcfConnectionError, WcfOptions, WcfProtocol, WcfTimeoutError
from wcferry.io import (
    Function, Response, RpcContact, RpcContacts, UserInfo, DbRows, DbNames, DbTable, DbTables,
    MsgTypes, OcrMsg, RoomData, RoomMember, encode_message,
)

from conftest import rows


CONTACTS = RpcContacts(contacts=[
    RpcContact(wxid="wxid_friend", name="Friend"),
    RpcContact(wxid="123@chatroom", name="Room"),
    RpcContact(wxid="gh_news", name="News"),
    RpcContact(wxid="filehelper", name="文件传输助手"),
    RpcContact(wxid="fmessage", name="朋友推荐消息"),
])


@pytest.mark.asyncio
async def test_is_login(wcf, host):
    await wcf.start()
    host.answer(Function.IS_LOGIN, status=1)
    assert await wcf.is_login() is True
    host.answer(Function.IS_LOGIN, status=0)
    assert await wcf.is_login() is False


@pytest.mark.asyncio
async def test_commands_need_a_connection(wcf):
    with pytest.raises(WcfConnectionError):
        await wcf.get_self_wxid()


@pytest.mark.asyncio
async def test_account_queries(wcf, host):
    await wcf.start()
    host.answer(Function.GET_SELF_WXID, string="wxid_me")
    host.answer(Function.GET_USER_INFO, user_info=UserInfo(wxid="wxid_me", name="Me", mobile="1", home="C:\\"))
    host.answer(Function.GET_MSG_TYPES, types=MsgTypes(types={1: "文字", 3: "图片"}))
    assert await wcf.get_self_wxid() == "wxid_me"
    assert (await wcf.get_user_info()).name == "Me"
    assert await wcf.get_msg_types() == {1: "文字", 3: "图片"}


@pytest.mark.asyncio
async def test_friends_filter_keeps_only_people(wcf, host):
    await wcf.start()
    host.answer(Function.GET_CONTACTS, contacts=CONTACTS)
    assert [c.wxid for c in await wcf.get_friends()] == ["wxid_friend"]
    assert [c.wxid for c in await wcf.get_chatrooms()] == ["123@chatroom"]
    assert len(await wcf.get_contacts()) == 5


@pytest.mark.asyncio
async def test_get_contact(wcf, host):
    await wcf.start()
    host.answer(Function.GET_CONTACT_INFO, contacts=RpcContacts(contacts=[RpcContact(wxid="wxid_a", remark="A")]))
    assert (await wcf.get_contact("wxid_a")).remark == "A"
    assert host.sent(Function.GET_CONTACT_INFO)[0].string == "wxid_a"

    host.answer(Function.GET_CONTACT_INFO, contacts=RpcContacts())
    assert await wcf.get_contact("wxid_nobody") is None


@pytest.mark.asyncio
async def test_database_queries(wcf, host):
    await wcf.start()
    host.answer(Function.GET_DB_NAMES, dbs=DbNames(names=["MicroMsg.db", "MSG0.db"]))
    host.answer(Function.GET_DB_TABLES, tables=DbTables(tables=[DbTable(name="Contact", sql="CREATE TABLE Contact(...)")]))
    host.answer(Function.EXEC_DB_QUERY, rows=rows(
        {"n": 42, "f": 3.14, "s": "hi", "b": b"\x01\x02\x03", "z": None},
        {"n": 7, "f": 0.5, "s": "", "b": b"", "z": None},
    ))

    assert await wcf.get_db_names() == ["MicroMsg.db", "MSG0.db"]
    assert (await wcf.get_db_tables("MicroMsg.db"))[0].name == "Contact"
    assert await wcf.query_sql("MicroMsg.db", "SELECT * FROM T;") == [
        {"n": 42, "f": 3.14, "s": "hi", "b": b"\x01\x02\x03", "z": None},
        {"n": 7, "f": 0.5, "s": "", "b": b"", "z": None},
    ]
    query = host.sent(Function.EXEC_DB_QUERY)[0].db_query
    assert (query.db, query.sql) == ("MicroMsg.db", "SELECT * FROM T;")


def room_host(host, members: list[RoomMember], contacts: dict[str, str]):
    blob = encode_message(RoomData(members=members))

    def handler(request):
        sql = request.db_query.sql
        if "FROM ChatRoom" in sql:
            return Response(function=Function.EXEC_DB_QUERY, rows=rows({"RoomData": blob}))
        if "WHERE UserName" in sql:
            wxid = sql.split("'")[1]
            found = [{"NickName": contacts[wxid]}] if wxid in contacts else []
            return Response(function=Function.EXEC_DB_QUERY, rows=rows(*found))
        return Response(function=Function.EXEC_DB_QUERY,
                        rows=rows(*({"UserName": k, "NickName": v} for k, v in contacts.items())))
    host.handlers[Function.EXEC_DB_QUERY] = handler


@pytest.mark.asyncio
async def test_chatroom_members_fall_back_to_nickname(wcf, host):
    await wcf.start()
    room_host(host,
              members=[RoomMember(wxid="wxid_a", name="Alice in room"), RoomMember(wxid="wxid_b", name="")],
              contacts={"wxid_a": "Alice", "wxid_b": "Bob"})
    assert await wcf.get_chatroom_members("123@chatroom") == {"wxid_a": "Alice in room", "wxid_b": "Bob"}
    assert "ChatRoomName = '123@chatroom'" in host.sent(Function.EXEC_DB_QUERY)[0].db_query.sql


@pytest.mark.asyncio
async def test_chatroom_members_of_unknown_room(wcf, host, waits):
    await wcf.start()
    host.answer(Function.EXEC_DB_QUERY, rows=DbRows())
    assert await wcf.get_chatroom_members("nope@chatroom") == {}
    assert len(host.sent(Function.EXEC_DB_QUERY)) == 5
    assert len(waits) == 4


@pytest.mark.asyncio
async def test_room_id_is_quoted(wcf, host, waits):
    await wcf.start()
    host.answer(Function.EXEC_DB_QUERY, rows=DbRows())
    await wcf.get_chatroom_members("x'; DROP TABLE Contact; --", attempts=1)
    assert "ChatRoomName = 'x''; DROP TABLE Contact; --'" in host.sent(Function.EXEC_DB_QUERY)[0].db_query.sql


@pytest.mark.asyncio
async def test_alias_in_chatroom(wcf, host):
    await wcf.start()
    room_host(host,
              members=[RoomMember(wxid="wxid_a", name="Alice in room"), RoomMember(wxid="wxid_b", name="")],
              contacts={"wxid_a": "Alice", "wxid_b": "Bob", "wxid_c": "Carol"})
    assert await wcf.get_alias_in_chatroom("wxid_a", "123@chatroom") == "Alice in room"
    assert await wcf.get_alias_in_chatroom("wxid_b", "123@chatroom") == "Bob"
    assert await wcf.get_alias_in_chatroom("wxid_c", "123@chatroom") is None
    assert await wcf.get_alias_in_chatroom("wxid_unknown", "123@chatroom") is None


@pytest.mark.asyncio
async def test_member_lists_are_joined_without_spaces(wcf, host):
    await wcf.start()
    host.answer(Function.ADD_ROOM_MEMBERS, status=1)
    assert await wcf.add_chatroom_members("123@chatroom", ["wxid_a", " wxid_b"]) == 1
    await wcf.del_chatroom_members("123@chatroom", "wxid_a, wxid_b")
    await wcf.invite_chatroom_members("123@chatroom", ["wxid_c"])
    assert host.sent(Function.ADD_ROOM_MEMBERS)[0].member_mgmt.wxids == "wxid_a,wxid_b"
    assert host.sent(Function.DEL_ROOM_MEMBERS)[0].member_mgmt.wxids == "wxid_a,wxid_b"
    assert host.sent(Function.INV_ROOM_MEMBERS)[0].member_mgmt.roomid == "123@chatroom"


@pytest.mark.asyncio
async def test_statuses_are_returned_raw(wcf, host):
    await wcf.start()
    host.answer(Function.SEND_TXT, status=-3)
    host.answer(Function.REVOKE_MSG, status=1)
    assert await wcf.send_text("hi @bob", "123@chatroom", aters=["wxid_bob"]) == -3
    assert await wcf.revoke_msg(12345) == 1
    text = host.sent(Function.SEND_TXT)[0].text_msg
    assert (text.msg, text.receiver, text.aters) == ("hi @bob", "123@chatroom", "wxid_bob")
    assert host.sent(Function.REVOKE_MSG)[0].ui64 == 12345


@pytest.mark.asyncio
async def test_other_commands_build_their_payloads(wcf, host):
    await wcf.start()
    await wcf.forward_msg(1, "wxid_a")
    await wcf.send_pat_msg("123@chatroom", "wxid_a")
    await wcf.send_xml("wxid_a", "<xml/>", 21)
    await wcf.send_rich_text("wxid_a", "name", "gh_acc", "title", "digest", "https://example.com", "")
    await wcf.refresh_pyq()
    await wcf.accept_new_friend("v3", "v4")
    await wcf.receive_transfer("wxid_a", "tf", "ta")
    await wcf.download_attach(9, extra="e.dat")

    assert host.sent(Function.FORWARD_MSG)[0].forward_msg.receiver == "wxid_a"
    assert host.sent(Function.SEND_PAT_MSG)[0].pat_msg.roomid == "123@chatroom"
    assert host.sent(Function.SEND_XML)[0].xml_msg.type == 21
    assert host.sent(Function.SEND_RICH_TXT)[0].rich_text.account == "gh_acc"
    assert host.sent(Function.REFRESH_PYQ)[0].ui64 == 0
    assert host.sent(Function.ACCEPT_FRIEND)[0].verification.scene == 30
    assert host.sent(Function.RECV_TRANSFER)[0].transfer.taid == "ta"
    assert host.sent(Function.DOWNLOAD_ATTACH)[0].attach_msg.extra == "e.dat"


@pytest.mark.asyncio
async def test_send_image_stages_and_discards(wcf, host):
    await wcf.start()
    staged = []

    def handler(request):
        staged.append(request.path_msg.path)
        assert os.path.exists(request.path_msg.path)
        return 0
    host.handlers[Function.SEND_IMG] = handler

    assert await wcf.send_image(b"\x89PNG", "wxid_a") == 0
    assert staged[0].startswith(wcf.cache_dir)
    assert not os.path.exists(staged[0])


@pytest.mark.asyncio
async def test_send_file_discards_on_failure(wcf, host):
    await wcf.start()
    staged = []

    def handler(request):
        staged.append(request.path_msg.path)
        raise WcfConnectionError("lost")
    host.handlers[Function.SEND_FILE] = handler

    with pytest.raises(WcfConnectionError):
        await wcf.send_file("data:application/pdf;base64,JVBERi0=", "wxid_a")
    assert not os.path.exists(staged[0])


@pytest.mark.asyncio
async def test_send_local_file_in_place(wcf, host, tmp_path):
    await wcf.start()
    path = tmp_path / "report.txt"
    path.write_text("report")
    await wcf.send_emotion(str(path), "wxid_a")
    assert host.sent(Function.SEND_EMOTION)[0].path_msg.path == str(path)
    assert path.exists()


@pytest.mark.asyncio
async def test_audio_message(wcf, host, waits):
    await wcf.start()
    host.answer_sequence(Function.GET_AUDIO_MSG, [{"string": ""}, {"string": "C:\\audio\\5.mp3"}])
    assert await wcf.get_audio_msg(5, "C:\\audio") == "C:\\audio\\5.mp3"
    assert host.sent(Function.GET_AUDIO_MSG)[0].audio_msg.id == 5


@pytest.mark.asyncio
async def test_audio_message_times_out(wcf, host, waits):
    await wcf.start()
    host.answer(Function.GET_AUDIO_MSG, string="")
    with pytest.raises(WcfTimeoutError):
        await wcf.get_audio_msg(5, "C:\\audio")
    assert len(host.sent(Function.GET_AUDIO_MSG)) == 3
    assert len(waits) == 2


@pytest.mark.asyncio
async def test_ocr_needs_status_zero_and_text(wcf, host, waits):
    await wcf.start()
    host.answer_sequence(Function.EXEC_OCR, [
        {"ocr": OcrMsg(status=1, result="partial")},
        {"ocr": OcrMsg(status=0, result="recognised")},
    ])
    assert await wcf.get_ocr_result("C:\\img.dat") == "recognised"

    host.answer(Function.EXEC_OCR, ocr=OcrMsg(status=0, result=""))
    with pytest.raises(WcfTimeoutError):
        await wcf.get_ocr_result("C:\\img.dat")


@pytest.mark.asyncio
async def test_download_image(wcf, host, waits):
    await wcf.start()
    host.answer(Function.DOWNLOAD_ATTACH, status=0)
    host.answer_sequence(Function.DECRYPT_IMAGE, [{"string": ""}, {"string": ""}, {"string": "C:\\out\\a.jpg"}])
    assert await wcf.download_image(7, "C:\\in.dat", "C:\\out") == "C:\\out\\a.jpg"
    assert len(host.sent(Function.DECRYPT_IMAGE)) == 3
    assert host.sent(Function.DECRYPT_IMAGE)[0].dec_path.dst == "C:\\out"


@pytest.mark.asyncio
async def test_download_image_fails_before_polling(wcf, host, waits):
    await wcf.start()
    host.answer(Function.DOWNLOAD_ATTACH, status=-1)
    with pytest.raises(WcfCommandError, match="Failed to download attach"):
        await wcf.download_image(7, "C:\\in.dat", "C:\\out")
    assert host.sent(Function.DECRYPT_IMAGE) == []
    assert waits == []


@pytest.mark.asyncio
async def test_download_image_gives_up(wcf, host, waits):
    await wcf.start()
    host.answer(Function.DECRYPT_IMAGE, string="")
    with pytest.raises(WcfTimeoutError, match="Failed to decrypt image"):
        await wcf.download_image(7, "C:\\in.dat", "C:\\out", attempts=3)


@pytest.mark.asyncio
async def test_one_command_in_flight(wcf, host):
    await wcf.start()
    await asyncio.gather(*(wcf.is_login() for _ in range(10)))
    assert len(host.requests) == 10
    assert host.max_in_flight == 1


@pytest.mark.asyncio
async def test_print_traffic(host, tmp_path, capsys):
    wcf = WcfProtocol(client=host, cache_dir=str(tmp_path), print_traffic=True)
    await wcf.start()
    await wcf.is_login()
    assert "REQUEST: IS_LOGIN" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_context_manager(host, tmp_path):
    async with WcfProtocol(client=host, cache_dir=str(tmp_path)) as wcf:
        assert wcf.connected
    assert not host.connected


def test_from_options(tmp_path):
    options = WcfOptions(host="10.0.0.2", port=20000, recv_pyq=True, cache_dir=str(tmp_path / "c"))
    wcf = WcfProtocol.from_options(options)
    assert wcf.client.command_url == "tcp://10.0.0.2:20000"
    assert wcf.client.event_url == "tcp://10.0.0.2:20001"
    assert wcf.recv_pyq is True
    assert wcf.cache_dir == str(tmp_path / "c")
