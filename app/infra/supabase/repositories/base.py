"""Base repository for per-user tables"""
import logging
import time
from typing import Any, Dict, Generic, List, Type, TypeVar

from pydantic import BaseModel, ValidationError
from supabase import Client  # type: ignore

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class RepositoryError(Exception):
    """Raised when the store rejects or fails a request"""


class UserScopedRepository(Generic[T]):
    """
    Base repository for tables where every row belongs to one user.
    Hides Supabase implementation details from the rest of the application.
    Every call is logged as request / success / error with its duration.
    """

    error_class: Type[RepositoryError] = RepositoryError

    def __init__(self, client: Client, table_name: str, model_class: Type[T], columns: str = "*"):
        self._client = client
        self._table_name = table_name
        self._model_class = model_class
        self._columns = columns

    def _to_model(self, data: Dict[str, Any]) -> T:
        """Convert database dict to domain model"""
        return self._model_class(**data)

    def _to_models(self, data: List[Dict[str, Any]]) -> List[T]:
        """Convert list of database dicts to domain models"""
        return [self._to_model(item) for item in data]

    def _to_valid_models(self, action: str, data: List[Dict[str, Any]]) -> List[T]:
        """Convert rows, skipping (and logging) the ones that do not validate"""
        models = []
        for item in data:
            try:
                models.append(self._to_model(item))
            except ValidationError as e:
                logger.warning(
                    f"[{self._table_name}:{action}] skipping invalid row "
                    f"user_id={item.get('user_id')} id={item.get('id')}: {e}"
                )
        return models

    def _table(self):
        return self._client.table(self._table_name)

    @staticmethod
    def _require_user_id(user_id: str):
        if not user_id:
            raise ValueError("user_id is required")

    def _execute(self, action: str, query, **detail) -> List[Dict[str, Any]]:
        """
        Run a prepared query and return its rows.

        Raises:
            error_class: If Supabase reports an error
        """
        started = time.perf_counter()
        logger.info(f"[{self._table_name}:{action}] request {detail}")

        try:
            response = query.execute()
        except Exception as e:
            duration_ms = round((time.perf_counter() - started) * 1000)
            logger.error(f"[{self._table_name}:{action}] error after {duration_ms}ms {detail}: {e}")
            raise self.error_class(f"{self._table_name} {action} failed: {e}") from e

        rows = response.data if response is not None and response.data else []
        duration_ms = round((time.perf_counter() - started) * 1000)
        logger.info(f"[{self._table_name}:{action}] success in {duration_ms}ms rows={len(rows)}")
        return rows
