import logging
from sqlalchemy.orm import Session


class BaseService:
    """Holds the request's DB session and a per-service logger."""

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)
