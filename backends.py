import re
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import uuid4

from passlib.context import CryptContext
from pydantic import ValidationError

from errors import AlreadyExists, InvalidCredentialsFormat, NotFound, TeamRecordError, WrongPassword
from models import Session, TeamAccount

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Session]], Union[None, Awaitable[None]]]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class IdentityProvider(ABC):
    def __init__(self):
        self.current_session: Optional[Session] = None
        self._listeners: List[SessionListener] = []
        self._tokens: Dict[str, str] = {}  # account id -> id token

    @abstractmethod
    async def register(self, email: str, password: str) -> str:
        """Create an account and return its id"""

    @abstractmethod
    async def _sign_in(self, email: str, password: str) -> Session:
        ...

    def token_for(self, account_id: str) -> Optional[str]:
        """Id token issued to the account by its sign-up or current sign-in"""
        return self._tokens.get(account_id)

    async def authenticate(self, email: str, password: str) -> Session:
        session = await self._sign_in(email, password)
        self.current_session = session
        if session.id_token:
            self._tokens[session.account_id] = session.id_token
        await self._notify(session)
        return session

    async def deauthenticate(self):
        if self.current_session is not None:
            self._tokens.pop(self.current_session.account_id, None)
        self.current_session = None
        await self._notify(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener`` on every session change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, session: Optional[Session]):
        for listener in list(self._listeners):
            result = listener(session)
            if inspect.isawaitable(result):
                await result


class DocumentStore(ABC):
    @abstractmethod
    async def get_team(self, team_id: str) -> Optional[TeamAccount]:
        ...

    @abstractmethod
    async def put_team(self, team_id: str, record: Dict[str, Any], id_token: Optional[str] = None) -> None:
        ...


def team_from_record(team_id: str, record: Dict[str, Any]) -> TeamAccount:
    try:
        return TeamAccount.model_validate({**record, "id": team_id})
    except ValidationError as e:
        logger.error(f"Invalid team record {team_id}: {str(e)}")
        raise TeamRecordError("The team record is incomplete. Please contact support.") from e


def validate_credentials_format(email: str, password: str):
    if not email or not EMAIL_RE.match(email):
        raise InvalidCredentialsFormat("The email address is badly formatted.")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidCredentialsFormat(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")


class InMemoryIdentityProvider(IdentityProvider):
    def __init__(self, accounts: Optional[Dict[str, Dict[str, str]]] = None):
        super().__init__()
        # email -> {id, password_hash}; pass one dict to share accounts between sessions
        self._accounts: Dict[str, Dict[str, str]] = {} if accounts is None else accounts

    async def register(self, email: str, password: str) -> str:
        validate_credentials_format(email, password)
        key = email.strip().lower()
        if key in self._accounts:
            raise AlreadyExists("The email address is already in use by another account.")
        account_id = uuid4().hex
        self._accounts[key] = {"id": account_id, "password_hash": pwd_context.hash(password)}
        logger.info(f"Registered account {account_id}")
        return account_id

    async def _sign_in(self, email: str, password: str) -> Session:
        account = self._accounts.get((email or "").strip().lower())
        if account is None:
            raise NotFound("There is no account with this email.")
        if not pwd_context.verify(password, account["password_hash"]):
            raise WrongPassword("The password is invalid.")
        return Session(account_id=account["id"], email=email.strip().lower())


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self._teams: Dict[str, Dict[str, Any]] = {}

    async def get_team(self, team_id: str) -> Optional[TeamAccount]:
        record = self._teams.get(team_id)
        if record is None:
            return None
        return team_from_record(team_id, record)

    async def put_team(self, team_id: str, record: Dict[str, Any], id_token: Optional[str] = None) -> None:
        self._teams[team_id] = dict(record)
