"""
Tests for the Firebase REST adapters using a mocked transport
"""

import json

import httpx
import pytest

from errors import (
    AlreadyExists,
    BackendUnavailable,
    InvalidCredentialsFormat,
    NotFound,
    TeamRecordError,
    WrongPassword,
)
from firebase_backend import (
    FirebaseIdentityProvider,
    FirestoreDocumentStore,
    auth_error,
    decode_fields,
    encode_fields,
)
from progress_tracker import ProgressTracker
from session import SessionController

TEAM_RECORD = {
    "school": {"name": "Green Valley"},
    "schoolLocation": "Pune",
    "class": "6",
    "teamName": "Sparks",
    "students": ["Asha", "Ravi"],
}


def firebase_error(message):
    return httpx.Response(400, json={"error": {"code": 400, "message": message}})


class TestAuthErrors:
    @pytest.mark.parametrize("message,expected", [
        ("EMAIL_EXISTS", AlreadyExists),
        ("INVALID_EMAIL", InvalidCredentialsFormat),
        ("WEAK_PASSWORD : Password should be at least 6 characters", InvalidCredentialsFormat),
        ("EMAIL_NOT_FOUND", NotFound),
        ("INVALID_PASSWORD", WrongPassword),
        ("INVALID_LOGIN_CREDENTIALS", WrongPassword),
    ])
    def test_error_codes_map_to_taxonomy(self, message, expected):
        assert isinstance(auth_error({"error": {"message": message}}), expected)


class TestFirebaseIdentityProvider:
    @pytest.mark.asyncio
    async def test_sign_in_returns_session_with_token(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"localId": "uid-1", "email": "team@school.org", "idToken": "tok"})

        identity = FirebaseIdentityProvider("api-key", transport=httpx.MockTransport(handler))
        session = await identity.authenticate("team@school.org", "secret123")

        assert session.account_id == "uid-1"
        assert session.id_token == "tok"
        assert requests[0].url.path == "/v1/accounts:signInWithPassword"
        assert requests[0].url.params["key"] == "api-key"
        assert json.loads(requests[0].content)["returnSecureToken"] is True

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self):
        identity = FirebaseIdentityProvider(
            "api-key", transport=httpx.MockTransport(lambda request: firebase_error("EMAIL_EXISTS")))
        with pytest.raises(AlreadyExists):
            await identity.register("team@school.org", "secret123")

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        identity = FirebaseIdentityProvider("api-key", transport=httpx.MockTransport(handler))
        with pytest.raises(BackendUnavailable):
            await identity.authenticate("team@school.org", "secret123")
        assert identity.current_session is None


class TestFirestoreDocumentStore:
    def test_field_encoding_matches_firestore(self):
        fields = encode_fields(TEAM_RECORD)
        assert fields["teamName"] == {"stringValue": "Sparks"}
        assert fields["school"] == {"mapValue": {"fields": {"name": {"stringValue": "Green Valley"}}}}
        assert fields["students"]["arrayValue"]["values"][1] == {"stringValue": "Ravi"}
        assert decode_fields(fields) == TEAM_RECORD

    def test_decodes_numbers(self):
        assert decode_fields({"class": {"integerValue": "7"}, "x": {"nullValue": None}}) == {"class": 7, "x": None}

    @pytest.mark.asyncio
    async def test_get_team_with_bearer_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"name": "doc", "fields": encode_fields(TEAM_RECORD)})

        store = FirestoreDocumentStore("proj", token_provider=lambda: "tok",
                                       transport=httpx.MockTransport(handler))
        team = await store.get_team("uid-1")
        assert team.team_name == "Sparks"
        assert team.class_level == "6"
        assert seen["auth"] == "Bearer tok"
        assert seen["path"] == "/v1/projects/proj/databases/(default)/documents/teams/uid-1"

    @pytest.mark.asyncio
    async def test_missing_team_is_none(self):
        store = FirestoreDocumentStore("proj", transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        assert await store.get_team("uid-1") is None

    @pytest.mark.asyncio
    async def test_put_team_patches_document(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        store = FirestoreDocumentStore("proj", transport=httpx.MockTransport(handler))
        await store.put_team("uid-1", TEAM_RECORD)
        assert seen["method"] == "PATCH"
        assert decode_fields(seen["body"]["fields"]) == TEAM_RECORD

    @pytest.mark.asyncio
    async def test_put_team_failure(self):
        store = FirestoreDocumentStore("proj", transport=httpx.MockTransport(lambda request: httpx.Response(403)))
        with pytest.raises(BackendUnavailable):
            await store.put_team("uid-1", TEAM_RECORD)

    @pytest.mark.asyncio
    async def test_incomplete_team_document(self):
        record = {k: v for k, v in TEAM_RECORD.items() if k != "teamName"}
        store = FirestoreDocumentStore("proj", transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"fields": encode_fields(record)})))
        with pytest.raises(TeamRecordError):
            await store.get_team("uid-1")

    @pytest.mark.asyncio
    async def test_explicit_token_overrides_provider(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={})

        store = FirestoreDocumentStore("proj", token_provider=lambda: None, transport=httpx.MockTransport(handler))
        await store.put_team("uid-1", TEAM_RECORD, id_token="fresh")
        assert seen["auth"] == "Bearer fresh"


class TestFirebaseRegistration:
    @pytest.mark.asyncio
    async def test_team_record_is_written_with_new_account_token(self, static_courses, team_form):
        firestore_calls = []

        def identity_handler(request):
            assert request.url.path == "/v1/accounts:signUp"
            return httpx.Response(200, json={"localId": "uid-9", "email": "team@school.org",
                                             "idToken": "signup-token"})

        def firestore_handler(request):
            firestore_calls.append((request.method, request.headers.get("Authorization")))
            return httpx.Response(200, json={})

        identity = FirebaseIdentityProvider("api-key", transport=httpx.MockTransport(identity_handler))
        documents = FirestoreDocumentStore(
            "proj",
            token_provider=lambda: identity.current_session.id_token if identity.current_session else None,
            transport=httpx.MockTransport(firestore_handler),
        )
        controller = SessionController(identity, documents, static_courses({}), ProgressTracker())

        assert await controller.register_team("team@school.org", "secret123", **team_form)
        assert firestore_calls == [("PATCH", "Bearer signup-token")]
        assert identity.current_session is None
        assert not controller.ready
