"""
REST Implementation of the Remote Stores

Talks to the transactions / fiscal books backend over HTTP with
`requests`. Paths are relative to the configured base URL:

    api/transaction/...             transactions
    api/fiscal-book/...             fiscal books
    api/export/fiscal-book/{id}/... exports
    grade?name=...                  deprecated name-based calls

ERROR TRANSLATION: every transport error or non-2xx answer becomes a
`RemoteFailure` (404 becomes `NotFoundError`). When the backend sends a
`{"message": ...}` body it is kept as `server_message`, which is what
the user gets to see.

RETRY: only idempotent reads are retried, and only when
`ApiSettings.max_attempts` is above 1. The default is a single attempt.
"""

from typing import Any, Optional

import requests
import structlog
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from perfinper.config import ApiSettings, get_settings
from perfinper.errors import NotFoundError, RemoteFailure
from perfinper.models import FiscalBook, Transaction
from perfinper.services.remote.interface import (
    FiscalBookStoreInterface,
    TransactionStoreInterface,
)


logger = structlog.get_logger(__name__)


TRANSACTION_PATH = "api/transaction"
FISCAL_BOOK_PATH = "api/fiscal-book"
EXPORT_PATH = "api/export/fiscal-book"
LEGACY_NAME_PATH = "grade"


def _is_retryable(error: BaseException) -> bool:
    """Transport errors and 5xx answers are worth another attempt."""
    if not isinstance(error, RemoteFailure):
        return False
    return error.status_code is None or error.status_code >= 500


class ApiClient:
    """
    Low-level HTTP client wrapper.

    Owns the `requests.Session`, joins paths to the base URL and
    translates failures into the perfinper error taxonomy.
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().api
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    def url(self, path: str) -> str:
        return f"{self._settings.base_url}{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        failure_message: str = "Falha na comunicação com o servidor",
    ) -> Any:
        """
        Perform one HTTP call and return the decoded body.

        Returns:
            Parsed JSON, the raw text for non-JSON bodies, or None when
            the body is empty

        Raises:
            NotFoundError: On HTTP 404
            RemoteFailure: On any other failure
        """
        url = self.url(path)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning("remote_request_failed", method=method, url=url, error=str(e))
            raise RemoteFailure(failure_message) from e

        if response.status_code >= 400:
            server_message = self._server_message(response)
            logger.warning(
                "remote_request_rejected",
                method=method,
                url=url,
                status_code=response.status_code,
                server_message=server_message,
            )
            if response.status_code == 404:
                error = NotFoundError(server_message or failure_message)
                error.server_message = server_message
                raise error
            raise RemoteFailure(
                failure_message,
                server_message=server_message,
                status_code=response.status_code,
            )

        return self._decode(response)

    def get(self, path: str, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        """GET with the configured retry policy."""
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return self.request("PUT", path, json=json, **kwargs)

    def delete(self, path: str, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return self.request("DELETE", path, params=params, **kwargs)

    @staticmethod
    def _server_message(response: requests.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            return str(message) if message else None
        return None

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            return response.json()
        try:
            return response.json()
        except ValueError:
            return response.text


class RestTransactionStore(TransactionStoreInterface):
    """TransactionStoreInterface over the backend's REST API."""

    def __init__(self, client: ApiClient):
        self._client = client

    async def find_by_id(self, transaction_id: str) -> Transaction:
        data = self._client.get(
            f"{TRANSACTION_PATH}/{transaction_id}",
            failure_message="Falha ao carregar a transação",
        )
        if not data:
            raise NotFoundError(f"Transação {transaction_id} não encontrada")
        return Transaction.model_validate(data)

    async def find_all_in_period(self, period: str) -> list[Transaction]:
        data = self._client.get(
            f"{TRANSACTION_PATH}/period/{period}",
            failure_message="Falha ao carregar as transações do período",
        )
        return [Transaction.model_validate(item) for item in data or []]

    async def insert(self, transaction: Transaction) -> Transaction:
        data = self._client.post(
            f"{TRANSACTION_PATH}/",
            json=transaction.to_wire(),
            failure_message="Falha ao inserir a transação",
        )
        return Transaction.model_validate(data) if isinstance(data, dict) else transaction

    async def update_by_id(self, transaction_id: str, transaction: Transaction) -> Transaction:
        data = self._client.put(
            f"{TRANSACTION_PATH}/{transaction_id}",
            json=transaction.to_wire(),
            failure_message="Falha ao atualizar a transação",
        )
        # Some backends answer with a status message instead of the record
        if isinstance(data, dict) and (data.get("id") or data.get("_id")):
            return Transaction.model_validate(data)
        return transaction

    async def delete_by_id(self, transaction_id: str) -> None:
        self._client.delete(
            f"{TRANSACTION_PATH}/{transaction_id}",
            failure_message="Falha ao excluir a transação",
        )

    async def separate_by_id(self, transaction_id: str) -> Any:
        return self._client.post(
            f"{TRANSACTION_PATH}/separate/{transaction_id}",
            failure_message="Falha ao separar a transação",
        )

    async def remove_all_in_period(self, period: str) -> None:
        self._client.delete(
            f"{TRANSACTION_PATH}/period/{period}",
            failure_message="Falha ao excluir as transações do período",
        )

    async def remove_all_by_name(self, name: str) -> None:
        self._client.delete(
            LEGACY_NAME_PATH,
            params={"name": name},
            failure_message="Falha ao excluir as transações",
        )

    async def find_unique_periods(self) -> list[str]:
        data = self._client.post(
            f"{TRANSACTION_PATH}/periods/",
            failure_message="Falha ao carregar os períodos",
        )
        return [str(period) for period in data or []]

    async def find_unique_years(self) -> list[str]:
        data = self._client.post(
            f"{TRANSACTION_PATH}/years/",
            failure_message="Falha ao carregar os anos",
        )
        return [str(year) for year in data or []]


class RestFiscalBookStore(FiscalBookStoreInterface):
    """FiscalBookStoreInterface over the backend's REST API."""

    def __init__(self, client: ApiClient):
        self._client = client

    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[FiscalBook]:
        params = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        data = self._client.get(
            FISCAL_BOOK_PATH,
            params=params or None,
            failure_message="Falha ao carregar os livros fiscais",
        )
        # Paginated answers wrap the list
        if isinstance(data, dict):
            data = data.get("fiscalBooks") or data.get("data") or []
        return [FiscalBook.model_validate(item) for item in data or []]

    async def get_by_id(self, book_id: str) -> FiscalBook:
        data = self._client.get(
            f"{FISCAL_BOOK_PATH}/{book_id}",
            failure_message="Falha ao carregar o livro fiscal",
        )
        if not data:
            raise NotFoundError(f"Livro fiscal {book_id} não encontrado")
        return FiscalBook.model_validate(data)

    async def create(self, book: FiscalBook) -> FiscalBook:
        data = self._client.post(
            FISCAL_BOOK_PATH,
            json=book.to_wire(),
            failure_message="Falha ao criar o livro fiscal",
        )
        return FiscalBook.model_validate(data) if isinstance(data, dict) else book

    async def update(self, book_id: str, book: FiscalBook) -> FiscalBook:
        data = self._client.put(
            f"{FISCAL_BOOK_PATH}/{book_id}",
            json=book.to_wire(),
            failure_message="Falha ao atualizar o livro fiscal",
        )
        return FiscalBook.model_validate(data) if isinstance(data, dict) else book

    async def delete(self, book_id: str) -> None:
        self._client.delete(
            f"{FISCAL_BOOK_PATH}/{book_id}",
            failure_message="Falha ao excluir o livro fiscal",
        )

    async def close(self, book_id: str) -> FiscalBook:
        data = self._client.put(
            f"{FISCAL_BOOK_PATH}/{book_id}/close",
            failure_message="Falha ao fechar o livro fiscal",
        )
        return FiscalBook.model_validate(data or {"_id": book_id})

    async def reopen(self, book_id: str) -> FiscalBook:
        data = self._client.put(
            f"{FISCAL_BOOK_PATH}/{book_id}/reopen",
            failure_message="Falha ao reabrir o livro fiscal",
        )
        return FiscalBook.model_validate(data or {"_id": book_id})

    async def add_transactions(self, book_id: str, transaction_ids: list[str]) -> Any:
        return self._client.post(
            f"{FISCAL_BOOK_PATH}/{book_id}/transactions",
            json={"transactionIds": list(transaction_ids)},
            failure_message="Falha ao adicionar transações ao livro fiscal",
        )

    async def remove_transaction(self, transaction_id: str) -> Any:
        return self._client.delete(
            f"{FISCAL_BOOK_PATH}/transactions/{transaction_id}",
            failure_message="Falha ao remover a transação do livro fiscal",
        )

    async def export(self, book_id: str, export_format: str = "json") -> Any:
        endpoint = "json" if export_format == "json" else "csv"
        return self._client.get(
            f"{EXPORT_PATH}/{book_id}/{endpoint}",
            params={"transactions": "true"},
            failure_message="Falha ao exportar o livro fiscal",
        )

    async def get_transactions(
        self,
        book_id: str,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> list[Transaction]:
        params = {
            k: v for k, v in {"limit": limit, "sort": sort, "order": order}.items()
            if v is not None
        }
        data = self._client.get(
            f"{FISCAL_BOOK_PATH}/{book_id}/transactions",
            params=params or None,
            failure_message="Falha ao carregar as transações do livro fiscal",
        )
        # Paginated answers wrap the list
        if isinstance(data, dict):
            data = data.get("transactions") or []
        return [_transaction_from_book(item) for item in data or []]

    async def get_statistics(self) -> dict[str, Any]:
        data = self._client.get(
            f"{FISCAL_BOOK_PATH}/statistics",
            failure_message="Falha ao carregar as estatísticas dos livros fiscais",
        )
        return data if isinstance(data, dict) else {}


def _transaction_from_book(item: dict[str, Any]) -> Transaction:
    """Book listings send Mongo-style `_id` instead of `id`."""
    if "_id" in item:
        item = dict(item)
        mongo_id = item.pop("_id")
        if not item.get("id"):
            item["id"] = mongo_id
    return Transaction.model_validate(item)
