import logging
from typing import Any, Callable, Dict, Optional

import httpx

from backends import DocumentStore, IdentityProvider, team_from_record
from errors import (
    AlreadyExists,
    BackendUnavailable,
    InvalidCredentials,
    InvalidCredentialsFormat,
    LMSError,
    NotFound,
    TeamRecordError,
    WrongPassword,
)
from models import Session, TeamAccount

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"
TEAMS_COLLECTION = "teams"

AUTH_ERRORS = {
    "EMAIL_EXISTS": (AlreadyExists, "The email address is already in use by another account."),
    "INVALID_EMAIL": (InvalidCredentialsFormat, "The email address is badly formatted."),
    "WEAK_PASSWORD": (InvalidCredentialsFormat, "Password should be at least 6 characters."),
    "MISSING_PASSWORD": (InvalidCredentialsFormat, "A password is required."),
    "EMAIL_NOT_FOUND": (NotFound, "There is no account with this email."),
    "INVALID_PASSWORD": (WrongPassword, "The password is invalid."),
    "INVALID_LOGIN_CREDENTIALS": (WrongPassword, "The email or password is incorrect."),
    "USER_DISABLED": (InvalidCredentials, "This account has been disabled."),
}


def auth_error(payload: Dict[str, Any]) -> LMSError:
    """Map a Firebase Auth error response onto the error taxonomy"""
    message = str(payload.get("error", {}).get("message", ""))
    # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
    code = message.split(":", 1)[0].strip()
    error_cls, text = AUTH_ERRORS.get(code, (InvalidCredentials, message or "Authentication failed."))
    return error_cls(text)


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Unsupported Firestore value: {type(value).__name__}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: encode_value(v) for k, v in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


class FirebaseIdentityProvider(IdentityProvider):
    def __init__(self, api_key: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def _call(self, method: str, email: str, password: str) -> Dict[str, Any]:
        url = f"{IDENTITY_URL}/accounts:{method}"
        body = {"email": email, "password": password, "returnSecureToken": True}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.RequestError as e:
            logger.error(f"Firebase auth request failed: {str(e)}")
            raise BackendUnavailable("Could not reach the sign-in service. Please try again.") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code != 200:
            raise auth_error(payload)
        return payload

    async def register(self, email: str, password: str) -> str:
        # signUp also signs the new account in; its token authorises writing the team record
        payload = await self._call("signUp", email, password)
        account_id = payload["localId"]
        if payload.get("idToken"):
            self._tokens[account_id] = payload["idToken"]
        return account_id

    async def _sign_in(self, email: str, password: str) -> Session:
        payload = await self._call("signInWithPassword", email, password)
        return Session(account_id=payload["localId"], email=payload.get("email", email), id_token=payload.get("idToken"))


class FirestoreDocumentStore(DocumentStore):
    """Team documents in Firestore, authorised with the signed-in user's id token"""

    def __init__(self, project_id: str, token_provider: Callable[[], Optional[str]] = lambda: None,
                 timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.project_id = project_id
        self.token_provider = token_provider
        self.timeout = timeout
        self._transport = transport

    def _document_url(self, team_id: str) -> str:
        return (f"{FIRESTORE_URL}/projects/{self.project_id}/databases/(default)"
                f"/documents/{TEAMS_COLLECTION}/{team_id}")

    def _headers(self, id_token: Optional[str] = None) -> Dict[str, str]:
        token = id_token or self.token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, url: str, id_token: Optional[str] = None, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.request(method, url, headers=self._headers(id_token), **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Firestore request failed: {str(e)}", exc_info=True)
            raise BackendUnavailable("Could not reach the database. Please try again.") from e

    async def get_team(self, team_id: str) -> Optional[TeamAccount]:
        response = await self._request("GET", self._document_url(team_id))
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(f"Firestore get {team_id} returned {response.status_code}: {response.text}")
            raise BackendUnavailable("Could not load the team record.")
        try:
            record = decode_fields(response.json().get("fields", {}))
        except ValueError as e:
            logger.error(f"Firestore returned an unreadable team document {team_id}: {str(e)}")
            raise TeamRecordError("The team record is incomplete. Please contact support.") from e
        return team_from_record(team_id, record)

    async def put_team(self, team_id: str, record: Dict[str, Any], id_token: Optional[str] = None) -> None:
        response = await self._request("PATCH", self._document_url(team_id), id_token=id_token,
                                       json={"fields": encode_fields(record)})
        if response.status_code != 200:
            logger.error(f"Firestore put {team_id} returned {response.status_code}: {response.text}")
            raise BackendUnavailable("Could not save the team record.")
        logger.info(f"Team record saved: {team_id}")
