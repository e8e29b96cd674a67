from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """Base class for repositories sharing one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self.session = session
