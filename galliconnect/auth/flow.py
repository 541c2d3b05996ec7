"""Sign-in, registration and email verification as an explicit state machine.

``AUTH`` is the login/register form, ``VERIFY`` waits for the one-time code and
``RESOLVED`` means a user is signed in.  The pending verification is stored
through the gateway, so the code hash and the attempt counter never leave the
server; the web layer keeps only its random id in the session.
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..domain import Shop, ShopType, User, UserRole, as_utc, utcnow
from ..errors import (AccountNotFound, AuthError, InvalidCode, InvalidCredentials, OtpExpired,
                      OtpLocked, RegistrationRejected, VerificationEnded)
from ..store import Store
from ..utils.geo import Coordinates
from ..utils.otp import generate_otp, hash_otp, otp_expired, otp_matches

# (recipient name, recipient email, code) -> notice for the user or None
Dispatcher = Callable[[str, str, str], Optional[str]]

ADMIN_USER_ID = 'admin-1'
DEFAULT_SHOP_RATING = 4.5


class AuthStep(str, enum.Enum):
    AUTH = 'AUTH'
    VERIFY = 'VERIFY'
    RESOLVED = 'RESOLVED'


@dataclass
class PendingVerification:
    id: str
    user: User
    code_hash: str
    issued_at: datetime
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user': self.user.public_dict(),
            'code_hash': self.code_hash,
            'issued_at': self.issued_at.isoformat(),
            'attempts': self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional['PendingVerification']:
        if not data:
            return None
        return cls(
            id=data['id'],
            user=User.from_dict(data['user']),
            code_hash=data['code_hash'],
            issued_at=as_utc(data['issued_at']),
            attempts=int(data.get('attempts', 0)),
        )


def load_pending(store: Store, pending_id: Optional[str]) -> Optional[PendingVerification]:
    if not pending_id:
        return None
    return PendingVerification.from_dict(store.get_pending_verification(pending_id))


@dataclass
class Registration:
    name: str
    email: str
    password: str
    role: UserRole
    contact: str = ''
    address: str = ''
    landmarks: Optional[str] = None
    shop_type: ShopType = ShopType.GROCERIES
    area: str = ''


@dataclass
class AuthOutcome:
    step: AuthStep
    user: Optional[User] = None
    notice: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.step == AuthStep.RESOLVED


def admin_identity(email: str) -> User:
    return User(
        id=ADMIN_USER_ID,
        name='System Admin',
        email=email,
        role=UserRole.ADMIN,
        contact='000',
        address='HQ',
        is_verified=True,
        is_email_verified=True,
    )


class AuthFlow:
    def __init__(
        self,
        store: Store,
        dispatch: Dispatcher,
        admin_credentials: Iterable[Mapping[str, str]],
        otp_ttl_minutes: int = 10,
        max_attempts: int = 5,
        code_factory: Callable[[], str] = generate_otp,
        clock: Callable[[], datetime] = utcnow,
        pending: Optional[PendingVerification] = None,
    ) -> None:
        self.store = store
        self.dispatch = dispatch
        self.admin_credentials = list(admin_credentials)
        self.otp_ttl_minutes = otp_ttl_minutes
        self.max_attempts = max_attempts
        self.code_factory = code_factory
        self.clock = clock
        self.pending = pending

    @property
    def step(self) -> AuthStep:
        return AuthStep.VERIFY if self.pending else AuthStep.AUTH

    def reset(self) -> None:
        if self.pending is not None:
            self.store.delete_pending_verification(self.pending.id)
        self.pending = None

    def _admin_match(self, email: str, password: str) -> bool:
        return any(
            secrets.compare_digest(entry.get('email', '').encode(), email.encode())
            and secrets.compare_digest(entry.get('password', '').encode(), password.encode())
            for entry in self.admin_credentials
        )

    def _find_user(self, email: str, role: UserRole) -> Optional[User]:
        return next(
            (user for user in self.store.get_users() if user.email == email and user.role == role),
            None,
        )

    def _start_verification(self, user: User) -> AuthOutcome:
        code = self.code_factory()
        self.pending = PendingVerification(
            id=secrets.token_urlsafe(16),
            user=user,
            code_hash=hash_otp(code),
            issued_at=self.clock(),
        )
        self.store.add_pending_verification(self.pending.to_dict())
        # The code exists before delivery is attempted; a failed send still lands on VERIFY.
        notice = self.dispatch(user.name, user.email, code)
        return AuthOutcome(step=AuthStep.VERIFY, user=user, notice=notice)

    def login(self, email: str, password: str, role: UserRole | str) -> AuthOutcome:
        role = UserRole(role)
        email = (email or '').strip()
        self.reset()

        if role == UserRole.ADMIN:
            if self._admin_match(email, password or ''):
                return AuthOutcome(step=AuthStep.RESOLVED, user=admin_identity(email))
            raise InvalidCredentials('Invalid Admin credentials.')

        user = self._find_user(email, role)
        if user is None:
            raise AccountNotFound()
        if user.password_hash and not check_password_hash(user.password_hash, password or ''):
            raise InvalidCredentials()
        if user.is_email_verified:
            return AuthOutcome(step=AuthStep.RESOLVED, user=user)
        return self._start_verification(user)

    def register(self, form: Registration, coordinates: Optional[Coordinates] = None) -> AuthOutcome:
        role = UserRole(form.role)
        email = (form.email or '').strip()
        self.reset()

        if role == UserRole.ADMIN:
            raise RegistrationRejected('Admin accounts cannot be registered.')
        if not email or not (form.name or '').strip():
            raise RegistrationRejected('Name and email are required.')
        if self._find_user(email, role) is not None:
            raise RegistrationRejected('An account with this email already exists. Sign in instead.')

        user = User(
            id=secrets.token_hex(6),
            email=email,
            name=form.name.strip(),
            role=role,
            contact=form.contact,
            address=form.address,
            landmarks=form.landmarks or None,
            is_verified=role == UserRole.CUSTOMER,
            is_email_verified=False,
            password_hash=generate_password_hash(form.password) if form.password else None,
        )
        self.store.add_user(user)

        if role == UserRole.RETAILER:
            latitude, longitude = coordinates if coordinates else (None, None)
            self.store.add_shop(Shop(
                id=f'shop-{user.id}',
                owner_id=user.id,
                name=f"{user.name}'s Store",
                type=ShopType(form.shop_type),
                area=form.area,
                address=form.address,
                is_open=False,
                rating=DEFAULT_SHOP_RATING,
                latitude=latitude,
                longitude=longitude,
            ))

        return self._start_verification(user)

    def verify(self, code: str) -> AuthOutcome:
        if self.pending is None:
            raise AuthError('There is no verification in progress.')
        # Another request may have used it up since this flow was built.
        pending = load_pending(self.store, self.pending.id)
        if pending is None:
            self.pending = None
            raise VerificationEnded()
        self.pending = pending

        if otp_expired(pending.issued_at, self.clock(), self.otp_ttl_minutes):
            self.reset()
            raise OtpExpired()

        if not otp_matches(pending.code_hash, (code or '')):
            attempts = self.store.record_failed_attempt(pending.id)
            if attempts is None:
                self.pending = None
                raise VerificationEnded()
            pending.attempts = attempts
            if self.max_attempts and attempts >= self.max_attempts:
                self.reset()
                raise OtpLocked()
            raise InvalidCode()

        self.reset()
        self.store.verify_email(pending.user.id)
        user = User.from_dict({**pending.user.to_dict(), 'is_email_verified': True})
        return AuthOutcome(step=AuthStep.RESOLVED, user=user)
