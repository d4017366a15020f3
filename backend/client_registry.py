"""
Registration of tenant websites allowed to embed the tracking client.
"""
import logging
import secrets
import string
from typing import List, Optional

from sqlalchemy.orm import Session

from db_models import Client, ClientStatus

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "nlt_"  # newsletter tracker
API_KEY_PREFIX = "key_"
CLIENT_ID_LENGTH = 16
API_KEY_LENGTH = 32

# URL-safe alphabet
ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def _random_token(length: int) -> str:
    return ''.join(secrets.choice(ID_ALPHABET) for _ in range(length))


def new_client_id() -> str:
    """Generate an id in format nlt_XXXXXXXXXXXXXXXX."""
    return f"{CLIENT_ID_PREFIX}{_random_token(CLIENT_ID_LENGTH)}"


def new_api_key() -> str:
    """Generate an API key in format key_ followed by 32 characters."""
    return f"{API_KEY_PREFIX}{_random_token(API_KEY_LENGTH)}"


def generate_client_id(
    db: Session,
    domain: str,
    name: str,
    email: str,
    owner: Optional[str] = None,
) -> Client:
    """
    Register a new client and return it.

    Every call creates a new client; existing ids are never regenerated.
    """
    # Keep generating until we get a unique one
    for _ in range(10):  # Max 10 attempts
        client_id = new_client_id()
        existing = db.query(Client).filter(Client.client_id == client_id).first()
        if not existing:
            break
    else:
        raise RuntimeError("Failed to generate a unique client id")

    client = Client(
        client_id=client_id,
        api_key=new_api_key(),
        domain=domain.strip().lower(),
        name=name.strip(),
        email=email.strip().lower(),
        owner=owner,
        status=ClientStatus.ACTIVE,
    )
    db.add(client)
    db.commit()
    db.refresh(client)

    logger.info(f"Registered client {client.client_id} for {client.domain}")
    return client


def get_client(db: Session, client_id: str) -> Optional[Client]:
    """Get client by its public id."""
    return db.query(Client).filter(Client.client_id == client_id).first()


def list_clients(db: Session, owner: Optional[str] = None, active_only: bool = False) -> List[Client]:
    """List clients, optionally for one owner and only active ones."""
    query = db.query(Client)
    if owner:
        query = query.filter(Client.owner == owner)
    if active_only:
        query = query.filter(Client.status == ClientStatus.ACTIVE)
    return query.order_by(Client.created_at.desc(), Client.id.desc()).all()


def validate_client_id(db: Session, client_id: str) -> bool:
    """True only when the client exists and is active."""
    if not client_id:
        return False
    client = get_client(db, client_id)
    return bool(client and client.status == ClientStatus.ACTIVE)


def authenticate_client(db: Session, client_id: str, api_key: str) -> Optional[Client]:
    """Return the active client matching both id and key, else None."""
    client = get_client(db, client_id)
    if not client or client.status != ClientStatus.ACTIVE:
        return None
    if not secrets.compare_digest(client.api_key, api_key or ""):
        return None
    return client


def set_client_status(db: Session, client_id: str, status: ClientStatus) -> Optional[Client]:
    """Change a client's status. Returns None if the client does not exist."""
    client = get_client(db, client_id)
    if not client:
        return None
    client.status = status
    db.commit()
    db.refresh(client)
    logger.info(f"Client {client_id} status set to {status.value}")
    return client
