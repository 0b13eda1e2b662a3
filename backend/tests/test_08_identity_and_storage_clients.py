"""
Tests 801-820: Identity-provider admin client and document storage client,
exercised against ``httpx.MockTransport``.
"""
import json
import uuid

import httpx
import pytest

from ssgms.exceptions import ConfigurationError, IdentityProviderError, StorageError, ValidationError
from ssgms.services.identity_admin import IdentityAdminClient
from ssgms.services.storage import DocumentStorage, document_object_name, object_name_from_url

BASE = "https://project.example.test"
KEY = "service-role-key"


class TestIdentityAdminClient:

    async def test_801_generate_link_posts_admin_request(self):
        user_id = uuid.uuid4()
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": str(user_id), "action_link": "https://link.test/abc"})

        client = IdentityAdminClient(BASE, KEY, transport=httpx.MockTransport(handler))
        link = await client.generate_link("recovery", "a@example.test", redirect_to=" https://app.test/reset ")

        assert link.user_id == user_id
        assert link.action_link == "https://link.test/abc"
        assert seen["url"] == f"{BASE}/auth/v1/admin/generate_link"
        assert seen["auth"] == f"Bearer {KEY}"
        assert seen["body"] == {"type": "recovery", "email": "a@example.test", "redirect_to": "https://app.test/reset"}

    async def test_802_nested_response_shape_is_understood(self):
        user_id = uuid.uuid4()

        def handler(request):
            return httpx.Response(200, json={
                "user": {"id": str(user_id)},
                "properties": {"action_link": "https://link.test/nested"},
            })

        client = IdentityAdminClient(BASE, KEY, transport=httpx.MockTransport(handler))
        link = await client.generate_link("invite", "b@example.test", data={"role": "user"})
        assert (link.user_id, link.action_link) == (user_id, "https://link.test/nested")

    async def test_803_provider_rejection_becomes_400(self):
        def handler(request):
            return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})

        client = IdentityAdminClient(BASE, KEY, transport=httpx.MockTransport(handler))
        with pytest.raises(IdentityProviderError) as exc:
            await client.generate_link("invite", "dup@example.test")
        assert exc.value.status_code == 400
        assert "already been registered" in exc.value.message

    async def test_804_server_error_is_502(self):
        client = IdentityAdminClient(BASE, KEY, transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down")))
        with pytest.raises(IdentityProviderError) as exc:
            await client.delete_user(uuid.uuid4())
        assert exc.value.status_code == 502

    async def test_805_missing_configuration(self):
        client = IdentityAdminClient(None, None)
        with pytest.raises(ConfigurationError, match="Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY"):
            await client.delete_user(uuid.uuid4())

    async def test_806_missing_action_link_is_an_error(self):
        client = IdentityAdminClient(
            BASE, KEY, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"id": str(uuid.uuid4())}))
        )
        with pytest.raises(IdentityProviderError, match="Failed to generate link"):
            await client.generate_link("recovery", "c@example.test")


class TestDocumentStorage:

    def test_811_object_names(self):
        assert document_object_name(7, "Approval Letter.PDF", now_ms=1700000000000) == "7_1700000000000.PDF"
        assert object_name_from_url(f"{BASE}/storage/v1/object/public/grant-documents/7_1.pdf") == "7_1.pdf"
        assert object_name_from_url("") is None

    async def test_812_upload_returns_public_url(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["upsert"] = request.headers["x-upsert"]
            return httpx.Response(200, json={"Key": "grant-documents/7_1.pdf"})

        storage = DocumentStorage(BASE, KEY, "grant-documents", transport=httpx.MockTransport(handler))
        url = await storage.upload("7_1.pdf", b"%PDF", "application/pdf")
        assert url == f"{BASE}/storage/v1/object/public/grant-documents/7_1.pdf"
        assert seen == {
            "method": "POST",
            "url": f"{BASE}/storage/v1/object/grant-documents/7_1.pdf",
            "upsert": "false",
        }

    async def test_813_remove_sends_prefixes(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[])

        storage = DocumentStorage(BASE, KEY, "grant-documents", transport=httpx.MockTransport(handler))
        await storage.remove("7_1.pdf")
        assert seen["body"] == {"prefixes": ["7_1.pdf"]}

    async def test_814_empty_upload_rejected_and_failures_raise(self):
        storage = DocumentStorage(BASE, KEY, "grant-documents", transport=httpx.MockTransport(lambda r: httpx.Response(400)))
        with pytest.raises(ValidationError):
            await storage.upload("x.pdf", b"")
        with pytest.raises(StorageError):
            await storage.upload("x.pdf", b"data")

    async def test_815_unreachable_storage_raises_storage_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        storage = DocumentStorage(BASE, KEY, "grant-documents", transport=httpx.MockTransport(handler))
        with pytest.raises(StorageError, match="Storage unreachable"):
            await storage.remove("7_1.pdf")
        with pytest.raises(StorageError, match="Storage unreachable"):
            await storage.upload("7_2.pdf", b"data")
