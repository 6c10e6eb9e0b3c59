"""
Integration tests for the bearer-authenticated portal edge functions:
contract selection, global search and signed file URLs.
"""

from datetime import date
from urllib.parse import urlsplit

import pytest
import pytest_asyncio
from fastapi import status
from httpx import AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import DocumentItem, FaqItem, FinancialBill, NewsItem, PortalTicket
from diamante_crm.services.storage import clamp_expires_in

OTHER_CPF = "11144477735"


@pytest_asyncio.fixture
async def portal_owner(db_session: AsyncSession, test_factory, bearer_for):
    """Portal client owning contract CTR-0001, plus its bearer headers."""
    user, _ = await test_factory.create_portal_client(db_session)
    await test_factory.create_contract(db_session, user.id, "CTR-0001")
    return {"user_id": user.id, "headers": bearer_for(user)}


@pytest_asyncio.fixture
async def stranger_headers(db_session: AsyncSession, test_factory, bearer_for):
    user, _ = await test_factory.create_portal_client(db_session, cpf=OTHER_CPF, phone="+5511900001111")
    return bearer_for(user)


@pytest.mark.unit
class TestClampExpiresIn:
    @pytest.mark.parametrize("raw, expected", [
        (None, 90),
        ("abc", 90),
        (10000, 300),
        (5, 30),
        (120, 120),
        ("150", 150),
        (59.5, 60),
        ("", 30),
    ])
    def test_clamp(self, raw, expected):
        assert clamp_expires_in(raw) == expected


@pytest.mark.integration
class TestContractSelect:
    async def test_requires_bearer(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post("/functions/v1/contract-select", json={"contract_number": "CTR-0001"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"] == "Não autenticado."

    async def test_refresh_token_is_not_a_bearer(self, client: AsyncClient, db_session: AsyncSession, test_factory):
        from diamante_crm.services.auth import AuthService

        user, _ = await test_factory.create_portal_client(db_session)
        refresh = AuthService().issue_tokens(user).refresh_token

        response = await client.post(
            "/functions/v1/contract-select",
            json={"contract_number": "CTR-0001"},
            headers={"Authorization": f"Bearer {refresh}"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_missing_contract_number(self, client: AsyncClient, portal_owner):
        response = await client.post("/functions/v1/contract-select", json={}, headers=portal_owner["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.parametrize("body", [[], ["CTR-0001"], "CTR-0001"])
    async def test_body_that_is_not_an_object(self, client: AsyncClient, portal_owner, body):
        response = await client.post("/functions/v1/contract-select", json=body, headers=portal_owner["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "contract_number é obrigatório."}

    async def test_unknown_contract(self, client: AsyncClient, portal_owner):
        response = await client.post(
            "/functions/v1/contract-select", json={"contract_number": "CTR-9999"}, headers=portal_owner["headers"]
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_foreign_contract(self, client: AsyncClient, portal_owner, stranger_headers):
        response = await client.post(
            "/functions/v1/contract-select", json={"contract_number": "CTR-0001"}, headers=stranger_headers
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_owner_selects_contract(self, client: AsyncClient, portal_owner):
        response = await client.post(
            "/functions/v1/contract-select", json={"contract_number": " CTR-0001 "}, headers=portal_owner["headers"]
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "contract_number": "CTR-0001",
            "development_name": "Residencial Diamante",
            "unit_label": "Apto 101",
        }

    async def test_active_agent_selects_any_contract(
        self, client: AsyncClient, db_session: AsyncSession, portal_owner, test_factory, bearer_for
    ):
        agent = await test_factory.create_agent(db_session)

        response = await client.post(
            "/functions/v1/contract-select", json={"contract_number": "CTR-0001"}, headers=bearer_for(agent)
        )

        assert response.status_code == status.HTTP_200_OK


@pytest.mark.integration
class TestGlobalSearch:
    async def _seed(self, session: AsyncSession):
        session.add_all([
            NewsItem(contract_number="CTR-0001", category="obra", title="Concretagem da laje", body="Etapa concluida"),
            NewsItem(contract_number="CTR-0002", category="obra", title="Laje de outro contrato", body=""),
            DocumentItem(contract_number="CTR-0001", type="contrato", title="Contrato de compra", storage_path="x.pdf"),
            FaqItem(contract_number=None, category="geral", question="Quando entrego a laje?", answer="Em breve"),
            PortalTicket(contract_number="CTR-0001", subject="Infiltracao", message="Perto da laje", protocol="P-1"),
            FinancialBill(
                contract_number="CTR-0001", status="open", amount_cents=10000,
                due_date=date(2026, 5, 10), competence="05/2026",
            ),
        ])
        await session.commit()

    async def test_requires_query_and_contract(self, client: AsyncClient, portal_owner):
        response = await client.post(
            "/functions/v1/global-search", json={"q": " ", "contract_number": "CTR-0001"}, headers=portal_owner["headers"]
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

        response = await client.post("/functions/v1/global-search", json=["laje"], headers=portal_owner["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_foreign_contract(self, client: AsyncClient, portal_owner, stranger_headers):
        response = await client.post(
            "/functions/v1/global-search", json={"q": "laje", "contract_number": "CTR-0001"}, headers=stranger_headers
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_groups_results_by_kind(self, client: AsyncClient, db_session: AsyncSession, portal_owner):
        await self._seed(db_session)

        response = await client.post(
            "/functions/v1/global-search", json={"q": "LAJE", "contract_number": "CTR-0001"},
            headers=portal_owner["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        groups = data["groups"]
        assert set(groups) == {"news", "documents", "faq", "tickets", "bills", "messages"}
        assert [hit["title"] for hit in groups["news"]] == ["Concretagem da laje"]
        assert groups["news"][0]["link_target"] == "/novidades"
        assert len(groups["faq"]) == 1
        assert groups["tickets"][0]["title"] == "Infiltracao"
        assert groups["documents"] == []
        assert data["total"] == 3

    async def test_bill_title_uses_due_date(self, client: AsyncClient, db_session: AsyncSession, portal_owner):
        await self._seed(db_session)

        response = await client.post(
            "/functions/v1/global-search", json={"q": "05/2026", "contract_number": "CTR-0001"},
            headers=portal_owner["headers"],
        )

        bills = response.json()["groups"]["bills"]
        assert bills == [{
            "type": "bills",
            "id": bills[0]["id"],
            "title": "Boleto 2026-05-10",
            "snippet": "open",
            "link_target": "/financeiro",
        }]

    async def test_missing_table_yields_empty_group(
        self, client: AsyncClient, db_session: AsyncSession, portal_owner
    ):
        await self._seed(db_session)
        await db_session.execute(text("DROP TABLE news"))
        await db_session.commit()

        response = await client.post(
            "/functions/v1/global-search", json={"q": "laje", "contract_number": "CTR-0001"},
            headers=portal_owner["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        groups = response.json()["groups"]
        assert groups["news"] == []
        assert len(groups["faq"]) == 1
        assert len(groups["tickets"]) == 1


@pytest.mark.integration
class TestSignedUrl:
    async def test_disallowed_bucket(self, client: AsyncClient, portal_owner):
        response = await client.post(
            "/functions/v1/signed-url", json={"bucket": "secret", "path": "CTR-0001/a.pdf"},
            headers=portal_owner["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Bucket não permitido."

    async def test_body_that_is_not_an_object(self, client: AsyncClient, portal_owner):
        response = await client.post("/functions/v1/signed-url", json="documents", headers=portal_owner["headers"])

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Bucket não permitido."}

    async def test_foreign_contract_path(self, client: AsyncClient, storage, portal_owner, stranger_headers):
        await storage.upload("documents", "CTR-0001/contrato.pdf", b"%PDF-1.4")

        response = await client.post(
            "/functions/v1/signed-url", json={"bucket": "documents", "path": "CTR-0001/contrato.pdf"},
            headers=stranger_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_missing_file(self, client: AsyncClient, portal_owner):
        response = await client.post(
            "/functions/v1/signed-url", json={"bucket": "documents", "path": "CTR-0001/nao-existe.pdf"},
            headers=portal_owner["headers"],
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_signed_download(self, client: AsyncClient, storage, portal_owner):
        await storage.upload("documents", "CTR-0001/contrato.pdf", b"%PDF-1.4")

        response = await client.post(
            "/functions/v1/signed-url",
            json={"bucket": "documents", "path": "CTR-0001/contrato.pdf", "expiresIn": 10000},
            headers=portal_owner["headers"],
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["expiresIn"] == 300
        parts = urlsplit(data["signedUrl"])
        assert parts.path == "/storage/v1/object/sign/documents/CTR-0001/contrato.pdf"

        download = await client.get(f"{parts.path}?{parts.query}")
        assert download.status_code == status.HTTP_200_OK
        assert download.content == b"%PDF-1.4"

    async def test_signed_route_rejects_bad_token(self, client: AsyncClient, storage, portal_owner):
        await storage.upload("documents", "CTR-0001/contrato.pdf", b"%PDF-1.4")

        response = await client.get("/storage/v1/object/sign/documents/CTR-0001/contrato.pdf?token=abc")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_public_bucket_download(self, client: AsyncClient, storage, db_session: AsyncSession):
        await storage.upload("portal-chat", "t1/cliente/foto.png", b"png")

        response = await client.get("/storage/v1/object/public/portal-chat/t1/cliente/foto.png")
        assert response.status_code == status.HTTP_200_OK
        assert response.content == b"png"

        response = await client.get("/storage/v1/object/public/documents/t1/cliente/foto.png")
        assert response.status_code == status.HTTP_404_NOT_FOUND
