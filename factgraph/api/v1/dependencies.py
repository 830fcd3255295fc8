"""Request-scoped dependencies: shared container, DB session, write guard."""

import hmac
from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_session(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> AsyncGenerator[AsyncSession, None]:
    async with container.db.session() as session:
        yield session


async def require_ingestion_secret(
    container: Annotated[ServiceContainer, Depends(get_container)],
    x_ingestion_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Guard for mutating endpoints; open when no secret is configured."""
    expected = container.settings.ingestion.ingestion_secret
    if not expected:
        return
    if not x_ingestion_secret or not hmac.compare_digest(x_ingestion_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-Ingestion-Secret header",
        )


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]
WriteGuard = Depends(require_ingestion_secret)
