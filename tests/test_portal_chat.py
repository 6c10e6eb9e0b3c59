"""
Integration tests for the public support chat (``/functions/v1/portal-chat``)
and the support inbox of the CRM.
"""

import base64
import re

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.exceptions import StorageError
from diamante_crm.core.security import sha256_hex
from diamante_crm.db.models import ChatAccessKey, ChatThread
from diamante_crm.services.portal_chat import make_protocol, sanitize_filename

CHAT_URL = "/functions/v1/portal-chat"


def _stored_files(storage) -> list:
    return [path for path in storage.root.rglob("*") if path.is_file()]


async def _create_ticket(client: AsyncClient, **overrides) -> dict:
    body = {
        "action": "create_ticket",
        "clientName": "Maria Cliente",
        "clientEmail": " Maria@Email.com ",
        "clientPhone": "(11) 98765-4321",
        "clientDocument": "529.982.247-25",
        "subject": "Vazamento no banheiro",
        "message": "Ha um vazamento perto do box.",
    }
    body.update(overrides)
    response = await client.post(CHAT_URL, json=body)
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["data"]


@pytest.mark.unit
class TestChatHelpers:
    def test_protocol_format(self):
        assert re.fullmatch(r"DIA-\d{6}-\d{4}", make_protocol())

    def test_sanitize_filename(self):
        assert sanitize_filename("Fotografia Ção (1).JPG") == "Fotografia-Cao-1-.JPG"
        assert sanitize_filename("###") == "-"
        assert sanitize_filename("") == "arquivo"


@pytest.mark.integration
class TestPortalChat:
    async def test_missing_and_unknown_action(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post(CHAT_URL, json={})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"ok": False, "error": "Acao obrigatoria."}

        response = await client.post(CHAT_URL, json={"action": "delete_everything"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Acao invalida."

    @pytest.mark.parametrize("body", [[], ["create_ticket"], "abc", 7])
    async def test_body_that_is_not_an_object(self, client: AsyncClient, db_session: AsyncSession, body):
        response = await client.post(CHAT_URL, json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"ok": False, "error": "Acao obrigatoria."}

    async def test_unparseable_body(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post(CHAT_URL, content=b"{action", headers={"Content-Type": "application/json"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["ok"] is False

    async def test_create_ticket_requires_name_subject_and_content(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post(CHAT_URL, json={"action": "create_ticket", "clientName": "Maria", "subject": "Oi"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["ok"] is False

    async def test_create_ticket_stores_only_key_hash(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        assert re.fullmatch(r"DIA-\d{6}-\d{4}", data["protocol"])
        assert re.fullmatch(r"[A-HJ-NP-Z2-9]{8}", data["accessKey"])
        thread = data["thread"]
        assert thread["status"] == "aberto"
        assert thread["clientEmail"] == "maria@email.com"
        assert thread["clientPhone"] == "5511987654321"
        assert thread["clientDocument"] == "52998224725"
        assert [m["senderType"] for m in data["messages"]] == ["cliente"]

        access = await db_session.get(ChatAccessKey, thread["id"])
        assert access.access_key_hash == sha256_hex(data["accessKey"])
        assert data["accessKey"] not in access.access_key_hash

    async def test_open_with_lowercase_key(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "open_ticket",
            "protocol": data["protocol"].lower(),
            "accessKey": data["accessKey"].lower(),
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["thread"]["protocol"] == data["protocol"]

    async def test_invalid_key(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "open_ticket", "protocol": data["protocol"], "accessKey": "ZZZZZZZZ",
        })

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json() == {"ok": False, "error": "Chave de acesso invalida."}

    async def test_unknown_protocol(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post(CHAT_URL, json={
            "action": "open_ticket", "protocol": "DIA-000000-0000", "accessKey": "ABCDEFGH",
        })

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_send_message_with_attachment(self, client: AsyncClient, db_session: AsyncSession, storage):
        data = await _create_ticket(client)
        content = base64.b64encode(b"fake-png").decode()

        response = await client.post(CHAT_URL, json={
            "action": "send_message",
            "protocol": data["protocol"],
            "accessKey": data["accessKey"],
            "attachments": [{
                "name": "Foto do box.png",
                "type": "image/png",
                "size": 8,
                "contentBase64": f"data:image/png;base64,{content}",
            }],
        })

        assert response.status_code == status.HTTP_200_OK
        message = response.json()["data"]["message"]
        assert message["senderName"] == "Maria Cliente"
        attachment = message["attachments"][0]
        assert attachment["kind"] == "image"
        assert attachment["path"].startswith(f"{data['thread']['id']}/cliente/")
        assert attachment["path"].endswith("-Foto-do-box.png")
        assert await storage.exists("portal-chat", attachment["path"])

    async def test_invalid_attachment_leaves_no_files(self, client: AsyncClient, db_session: AsyncSession, storage):
        response = await client.post(CHAT_URL, json={
            "action": "create_ticket",
            "clientName": "Maria Cliente",
            "subject": "Vazamento",
            "attachments": [
                {"name": "a.txt", "type": "text/plain", "contentBase64": base64.b64encode(b"ok").decode()},
                {"name": "b.txt", "type": "text/plain", "contentBase64": "!!!notb64"},
            ],
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"ok": False, "error": "Anexo b.txt invalido."}
        assert _stored_files(storage) == []

        threads = await db_session.scalar(select(func.count()).select_from(ChatThread))
        assert threads == 0

    async def test_failed_upload_removes_written_files(
        self, client: AsyncClient, db_session: AsyncSession, storage, monkeypatch
    ):
        data = await _create_ticket(client)
        upload = storage.upload
        calls = []

        async def failing_second_upload(bucket, path, content):
            calls.append(path)
            if len(calls) == 2:
                raise StorageError("Falha ao salvar arquivo.")
            return await upload(bucket, path, content)

        monkeypatch.setattr(storage, "upload", failing_second_upload)
        content = base64.b64encode(b"fake-png").decode()

        response = await client.post(CHAT_URL, json={
            "action": "send_message",
            "protocol": data["protocol"],
            "accessKey": data["accessKey"],
            "attachments": [
                {"name": "1.png", "type": "image/png", "contentBase64": content},
                {"name": "2.png", "type": "image/png", "contentBase64": content},
            ],
        })

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"ok": False, "error": "Falha ao salvar arquivo."}
        assert len(calls) == 2
        assert _stored_files(storage) == []

        response = await client.post(CHAT_URL, json={
            "action": "list_messages", "protocol": data["protocol"], "accessKey": data["accessKey"],
        })
        assert len(response.json()["data"]["messages"]) == 1

    async def test_send_message_requires_content(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "send_message", "protocol": data["protocol"], "accessKey": data["accessKey"], "message": "  ",
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_too_many_attachments(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "send_message",
            "protocol": data["protocol"],
            "accessKey": data["accessKey"],
            "attachments": [{"name": f"{i}.txt", "contentBase64": "YQ=="} for i in range(6)],
        })

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_list_messages_since(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)
        credentials = {"protocol": data["protocol"], "accessKey": data["accessKey"]}

        response = await client.post(CHAT_URL, json={"action": "list_messages", **credentials})
        assert len(response.json()["data"]["messages"]) == 1

        response = await client.post(CHAT_URL, json={
            "action": "list_messages", "since": "2999-01-01T00:00:00Z", **credentials,
        })
        assert response.json()["data"]["messages"] == []

        response = await client.post(CHAT_URL, json={"action": "list_messages", "since": "ontem", **credentials})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_close_ticket(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "close_ticket", "protocol": data["protocol"], "accessKey": data["accessKey"],
        })

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["thread"]["status"] == "fechado"


@pytest.mark.integration
class TestSupportReplies:
    async def test_support_reply_requires_bearer(self, client: AsyncClient, db_session: AsyncSession):
        data = await _create_ticket(client)

        response = await client.post(CHAT_URL, json={
            "action": "support_send_message", "threadId": data["thread"]["id"], "message": "Ola",
        })

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"] == "Sessao invalida."

    async def test_portal_client_cannot_reply(
        self, client: AsyncClient, db_session: AsyncSession, test_factory, bearer_for
    ):
        data = await _create_ticket(client)
        user, _ = await test_factory.create_portal_client(db_session)

        response = await client.post(CHAT_URL, headers=bearer_for(user), json={
            "action": "support_send_message", "threadId": data["thread"]["id"], "message": "Ola",
        })

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_staff_reply_and_unread_flags(self, client: AsyncClient, db_session: AsyncSession, ceo_user):
        data = await _create_ticket(client)
        thread_id = data["thread"]["id"]

        response = await client.get("/api/suporte/threads", headers=ceo_user["headers"])
        assert response.status_code == status.HTTP_200_OK
        threads = response.json()
        assert [t["id"] for t in threads] == [thread_id]
        assert threads[0]["unreadBySupport"] == 1

        response = await client.post(CHAT_URL, headers=ceo_user["headers"], json={
            "action": "support_send_message", "threadId": thread_id, "message": "Vamos agendar uma visita.",
        })
        assert response.status_code == status.HTTP_200_OK
        reply = response.json()["data"]["message"]
        assert reply["senderType"] == "suporte"
        assert reply["senderName"] == "Ana Diretora"
        assert reply["readBySupport"] is True
        assert reply["readByClient"] is False

        response = await client.get(f"/api/suporte/threads/{thread_id}/messages", headers=ceo_user["headers"])
        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()["messages"]) == 2

        response = await client.get("/api/suporte/threads", headers=ceo_user["headers"])
        assert response.json()[0]["unreadBySupport"] == 0

        response = await client.post(CHAT_URL, json={
            "action": "open_ticket", "protocol": data["protocol"], "accessKey": data["accessKey"],
        })
        messages = response.json()["data"]["messages"]
        assert all(m["readByClient"] for m in messages)

    async def test_reply_to_unknown_thread(self, client: AsyncClient, db_session: AsyncSession, ceo_user):
        response = await client.post(CHAT_URL, headers=ceo_user["headers"], json={
            "action": "support_send_message", "threadId": "nao-existe", "message": "Ola",
        })

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_inbox_requires_crm_profile(
        self, client: AsyncClient, db_session: AsyncSession, test_factory, bearer_for
    ):
        user, _ = await test_factory.create_portal_client(db_session)

        response = await client.get("/api/suporte/threads", headers=bearer_for(user))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_inbox_requires_token(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.get("/api/suporte/threads")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
