"""Auth-core services, wired together once per application."""
from dataclasses import dataclass

from services.access_tokens import AccessTokenIssuer
from services.accounts import AccountService
from services.session_store import SessionStore
from services.sweeper import TokenSweeper
from services.verification import VerificationService


@dataclass
class Services:
    storage: object
    tokens: AccessTokenIssuer
    sessions: SessionStore
    accounts: AccountService
    verification: VerificationService
    sweeper: TokenSweeper


def build_services(storage, config) -> Services:
    """Construct every service around one storage handle, reading settings from a Flask config mapping."""
    sessions = SessionStore(storage, ttl=config["REFRESH_TOKEN_EXPIRES"])
    return Services(
        storage=storage,
        tokens=AccessTokenIssuer(
            config["JWT_SECRET"],
            algorithm=config["JWT_ALGORITHM"],
            ttl=config["ACCESS_TOKEN_EXPIRES"],
            issuer=config["JWT_ISSUER"],
        ),
        sessions=sessions,
        accounts=AccountService(storage, sessions),
        verification=VerificationService(storage),
        sweeper=TokenSweeper(sessions, storage, interval=config["TOKEN_SWEEP_INTERVAL_SECONDS"]),
    )
