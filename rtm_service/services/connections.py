"""
Connection registry: named Azure DevOps credentials plus their cached sprints.

Personal access tokens are encrypted at rest and only decrypted to build a client.
"""
import logging
from typing import List, Optional, Sequence
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rtm_service.config import AzureDevOpsConfig, Settings
from rtm_service.models.connection import Connection, Sprint
from rtm_service.models.work_items import Iteration
from rtm_service.services.ado_client import AzureDevOpsClient
from rtm_service.utils.encryption import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)


class ConnectionExistsError(Exception):
    """Raised when a connection name is already taken."""
    pass


class ConnectionNotFoundError(Exception):
    """Raised when no connection has the requested ID."""
    pass


def add_connection(db: Session, name: str, org_url: str, pat: str, project: str) -> Connection:
    """
    Persist a new connection.
    
    Raises:
        ConnectionExistsError: If a connection with this name already exists
        ValueError: If a required field is empty
    """
    if not name or not org_url or not pat or not project:
        raise ValueError("name, org_url, pat and project are required")
    if get_connection_by_name(db, name) is not None:
        raise ConnectionExistsError(f"Connection name '{name}' already exists")
    
    connection = Connection(
        name=name,
        org_url=org_url.rstrip("/"),
        project=project,
        token_ciphertext=encrypt_secret(pat),
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConnectionExistsError(f"Connection name '{name}' already exists") from e
    db.refresh(connection)
    
    logger.info("Connection created", extra={"connection_id": connection.id, "connection_name": name})
    return connection


def list_connections(db: Session) -> List[Connection]:
    return db.query(Connection).order_by(Connection.name.asc()).all()


def get_connection(db: Session, connection_id: int) -> Connection:
    """
    Raises:
        ConnectionNotFoundError: If no connection has this ID
    """
    connection = db.query(Connection).filter(Connection.id == connection_id).first()
    if connection is None:
        raise ConnectionNotFoundError(f"Connection {connection_id} not found")
    return connection


def get_connection_by_name(db: Session, name: str) -> Optional[Connection]:
    return db.query(Connection).filter(Connection.name == name).first()


def update_connection(
    db: Session,
    connection_id: int,
    name: Optional[str] = None,
    org_url: Optional[str] = None,
    pat: Optional[str] = None,
    project: Optional[str] = None
) -> Connection:
    """
    Change the given fields of a connection; fields left as None are kept.
    
    Raises:
        ConnectionNotFoundError: If no connection has this ID
        ConnectionExistsError: If the new name belongs to another connection
    """
    connection = get_connection(db, connection_id)
    if name is not None and name != connection.name:
        if get_connection_by_name(db, name) is not None:
            raise ConnectionExistsError(f"Connection name '{name}' already exists")
        connection.name = name
    if org_url is not None:
        connection.org_url = org_url.rstrip("/")
    if project is not None:
        connection.project = project
    if pat is not None:
        connection.token_ciphertext = encrypt_secret(pat)
    
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConnectionExistsError(f"Connection name '{name}' already exists") from e
    db.refresh(connection)
    logger.info("Connection updated", extra={"connection_id": connection_id})
    return connection


def delete_connection(db: Session, connection_id: int) -> int:
    """
    Delete a connection and its cached sprints.
    
    Returns:
        Number of sprints deleted with it
    
    Raises:
        ConnectionNotFoundError: If no connection has this ID
    """
    connection = get_connection(db, connection_id)
    sprint_count = db.query(Sprint).filter(Sprint.connection_id == connection_id).count()
    db.delete(connection)
    db.commit()
    logger.info(
        "Connection deleted",
        extra={"connection_id": connection_id, "deleted_sprints": sprint_count}
    )
    return sprint_count


def store_sprints(db: Session, connection_id: int, iterations: Sequence[Iteration]) -> int:
    """
    Replace the cached sprints of a connection.
    
    Returns:
        Number of sprints stored
    """
    get_connection(db, connection_id)
    db.query(Sprint).filter(Sprint.connection_id == connection_id).delete()
    seen = set()
    for iteration in iterations:
        # (connection_id, id) is the primary key
        if iteration.id in seen:
            continue
        seen.add(iteration.id)
        db.add(Sprint(
            id=iteration.id,
            connection_id=connection_id,
            name=iteration.name,
            path=iteration.path,
            start_date=iteration.start_date,
            finish_date=iteration.finish_date,
            time_frame=iteration.time_frame,
        ))
    db.commit()
    logger.info(f"Stored {len(seen)} sprints for connection {connection_id}")
    return len(seen)


def get_sprints(db: Session, connection_id: int) -> List[Sprint]:
    """Cached sprints of a connection, earliest start date first."""
    return (
        db.query(Sprint)
        .filter(Sprint.connection_id == connection_id)
        .order_by(Sprint.start_date.asc(), Sprint.name.asc())
        .all()
    )


def build_client_for_connection(connection: Connection, app_settings: Optional[Settings] = None) -> AzureDevOpsClient:
    """Decrypt the stored token and build a client for this connection."""
    config = AzureDevOpsConfig.from_connection(
        org_url=connection.org_url,
        personal_access_token=decrypt_secret(connection.token_ciphertext),
        project=connection.project,
        app_settings=app_settings,
    )
    return AzureDevOpsClient(config)
