"""Session gate: token sets handed out by the identity provider and the capture session bound to each."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from app.capture.controller import CaptureSessionController
from app.capture.location import AcquisitionOptions, ClientLocationProvider
from app.capture.models import utcnow
from app.capture.upload import Uploader, build_uploader
from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    token_type: str = "Bearer"
    issued_at: datetime = field(default_factory=utcnow)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and self.expires_in > 0 and not self.is_expired()

    @classmethod
    def from_token_response(cls, data: dict) -> "SessionContext":
        """Build from a Keycloak token endpoint response."""
        return cls(
            access_token=data.get("access_token") or "",
            expires_in=int(data.get("expires_in") or 0),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
        )


@dataclass
class CaptureSession:
    context: SessionContext
    provider: ClientLocationProvider
    controller: CaptureSessionController = field(repr=False)

    def close(self) -> None:
        self.controller.reset()
        self.controller.close()
        self.provider.close()


class NotAuthenticatedError(Exception):
    pass


class SessionRegistry:
    """Maps access tokens to their capture session. One capture session per token.

    Sessions whose token set has run out are closed the next time the registry
    is consulted, so abandoned captures do not pile up.
    """

    def __init__(self, uploader: Uploader | None = None):
        self._uploader = uploader
        self._sessions: dict[str, CaptureSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def uploader(self) -> Uploader:
        if self._uploader is None:
            self._uploader = build_uploader(settings.upload_backend)
        return self._uploader

    async def open(self, context: SessionContext) -> CaptureSession:
        self.evict_expired()
        if not context.is_authenticated:
            raise NotAuthenticatedError("token set is empty or expired")
        existing = self._sessions.get(context.access_token)
        if existing is not None:
            return existing
        provider = ClientLocationProvider(
            clock_skew_seconds=settings.location_clock_skew_seconds,
            report_grace_ms=settings.location_report_grace_ms,
        )
        controller = CaptureSessionController(
            provider,
            self.uploader,
            options=AcquisitionOptions.from_settings(settings),
        )
        await controller.start()
        session = CaptureSession(context=context, provider=provider, controller=controller)
        self._sessions[context.access_token] = session
        logger.info("session/open: sessions=%d expiresIn=%d", len(self._sessions), context.expires_in)
        return session

    def get(self, access_token: str | None) -> CaptureSession:
        self.evict_expired()
        session = self._sessions.get(access_token or "")
        if session is None:
            raise NotAuthenticatedError("no capture session for this token")
        return session

    def evict_expired(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        expired = [token for token, s in self._sessions.items() if s.context.is_expired(now)]
        for token in expired:
            self._sessions.pop(token).close()
        if expired:
            logger.info("session/evict: expired=%d sessions=%d", len(expired), len(self._sessions))
        return len(expired)

    def logout(self, access_token: str | None) -> bool:
        """Reset the capture session and forget the token set. Returns False for unknown tokens."""
        session = self._sessions.pop(access_token or "", None)
        if session is None:
            return False
        session.close()
        logger.info("session/logout: sessions=%d", len(self._sessions))
        return True

    def close_all(self) -> None:
        for token in list(self._sessions):
            self.logout(token)


registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    return registry
