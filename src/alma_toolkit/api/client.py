"""
Async Alma API client using aiohttp
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar
from urllib.parse import quote, urlsplit

import aiohttp
from tenacity import before_sleep_log, retry, retry_if_exception, stop_after_attempt, wait_fixed

from alma_toolkit.constants import (
    BUDGET_HEADER,
    DEFAULT_ALMA_API_HOST,
    DEFAULT_CONCURRENCY,
    DEFAULT_THRESHOLD,
    DEFAULT_TIMEOUT,
    PER_SECOND_RETRY_ATTEMPTS,
    PER_SECOND_RETRY_WAIT,
)

from .batch import BatchExecutor, BatchItem, BatchReport, fetch_pages
from .budget import RateBudget
from .exceptions import (
    AlmaAbortedError,
    AlmaAccessError,
    AlmaError,
    AlmaLookupError,
    AlmaRemoteError,
    AlmaTransportError,
)
from .models import AlmaJSON, AlmaSet, CodeTableRow, SetMember, UserRequest

logger = logging.getLogger(__name__)

# Sized for the batch worker pool with headroom for page fetches
HTTP_CONNECTION_POOL_LIMITS = {"limit": 20, "limit_per_host": 20}

SETS_PATH = "/almaws/v1/conf/sets"
CODE_TABLES_PATH = "/almaws/v1/conf/code-tables"

TIn = TypeVar("TIn")
TOut = TypeVar("TOut")


def _is_per_second_limit(exception: BaseException) -> bool:
    """Alma's gateway answers 429 when more than the per-second allowance is used."""
    return isinstance(exception, AlmaRemoteError) and exception.status == 429


def _decode_remote_error(status: int, reason: str | None, body: str, url: str) -> AlmaRemoteError:
    """Build an AlmaRemoteError from an Alma errorList payload, falling back to the reason phrase."""
    message = reason or "HTTP error"
    code = None
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        payload = {}
    if isinstance(payload, dict):
        errors = (payload.get("errorList") or {}).get("error") or []
        if isinstance(errors, dict):
            errors = [errors]
        if errors:
            first = errors[0]
            code = str(first.get("errorCode")) if first.get("errorCode") is not None else None
            message = first.get("errorMessage") or message
    return AlmaRemoteError(status, message, url, code=code)


class AlmaClient:
    """Async client for Alma API operations.

    Every request reports the remaining daily call budget back into
    self.budget. Bulk operations run through a BatchExecutor that stops
    admitting work once the budget drops below the threshold or
    self.cancel_event is set.
    """

    def __init__(
        self,
        host: str = DEFAULT_ALMA_API_HOST,
        key: str = "",
        threshold: int = DEFAULT_THRESHOLD,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: int = DEFAULT_TIMEOUT,
        cancel_event: asyncio.Event | None = None,
    ):
        self.host = host.removeprefix("https://").removeprefix("http://").rstrip("/")
        self.base_url = f"https://{self.host}"
        self.key = key
        self.threshold = threshold
        self.concurrency = concurrency
        self.timeout = timeout
        self.budget = RateBudget()
        self.cancel_event = cancel_event or asyncio.Event()

        # Session will be created lazily when first needed
        self.session: aiohttp.ClientSession | None = None
        self._request_count = 0

    async def __aenter__(self) -> "AlmaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists, creating it if necessary."""
        if self.session is None:
            connector = aiohttp.TCPConnector(
                limit=HTTP_CONNECTION_POOL_LIMITS["limit"],
                limit_per_host=HTTP_CONNECTION_POOL_LIMITS["limit_per_host"],
                keepalive_timeout=30,
            )
            timeout_config = aiohttp.ClientTimeout(total=self.timeout, connect=10, sock_read=30)
            self.session = aiohttp.ClientSession(connector=connector, timeout=timeout_config)
        return self.session

    async def close(self) -> None:
        """Close the session. Must be called when done with client."""
        if self.session is not None:
            await self.session.close()
            self.session = None

    def url_for(self, path: str) -> str:
        """Build a request URL. Full Alma links are reduced to their path on the configured host."""
        if path.startswith(("http://", "https://")):
            path = urlsplit(path).path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"apikey {self.key}", "Accept": "application/json"}

    def _record_budget(self, response: aiohttp.ClientResponse) -> None:
        """Feed the remaining-call figure from a response into the shared budget."""
        reported = response.headers.get(BUDGET_HEADER)
        if reported is None:
            return
        try:
            self.budget.update(int(reported))
        except ValueError:
            logger.debug(f"Ignoring unparseable {BUDGET_HEADER} header: {reported!r}")

    @retry(
        retry=retry_if_exception(_is_per_second_limit),
        stop=stop_after_attempt(PER_SECOND_RETRY_ATTEMPTS),
        wait=wait_fixed(PER_SECOND_RETRY_WAIT),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        body: AlmaJSON | None = None,
    ) -> AlmaJSON:
        """
        Perform one Alma API round trip.

        Args:
            method: HTTP method
            path: API path (e.g. '/almaws/v1/conf/sets') or a full Alma link
            params: Query parameters
            body: JSON request body

        Returns:
            Decoded JSON response ({} for an empty body)

        Raises:
            AlmaRemoteError: Alma answered with an error status
            AlmaTransportError: No response was obtained
        """
        url = self.url_for(path)
        session = await self._ensure_session()
        self._request_count += 1
        request_number = self._request_count
        request_start = time.time()
        logger.debug(f"Request {request_number} starting: {method} {url}")

        try:
            async with session.request(method, url, params=params, json=body, headers=self._headers()) as response:
                self._record_budget(response)
                status = response.status
                reason = response.reason
                text = await response.text()
        except (aiohttp.ClientError, TimeoutError) as e:
            request_duration = time.time() - request_start
            logger.warning(
                f"Request {request_number} failed after {request_duration:.3f}s: {method} {url}: {type(e).__name__}: {e}"
            )
            raise AlmaTransportError(method, url, e) from e

        request_duration = time.time() - request_start
        logger.debug(
            f"Request {request_number} finished in {request_duration:.3f}s: {status} {method} {url} "
            f"(budget {self.budget.remaining})"
        )

        if status >= 400:
            raise _decode_remote_error(status, reason, text, url)
        if not text.strip():
            return {}
        try:
            return json.loads(text)
        except ValueError as e:
            logger.warning(f"Request {request_number} returned a body that is not JSON: {status} {method} {url}")
            raise AlmaRemoteError(status, "response body is not JSON", url) from e

    async def check_api_and_key(self, read_paths: Iterable[str], write_paths: Iterable[str]) -> None:
        """
        Verify the API key can reach every endpoint a subcommand needs.

        Uses Alma's permission test endpoints: GET {path}/test for read access
        and POST {path}/test for write access.

        Raises:
            AlmaAccessError: naming the first path that could not be reached
        """
        checks = [(path, "read") for path in dict.fromkeys(read_paths)]
        checks += [(path, "write") for path in dict.fromkeys(write_paths)]

        for path, access in checks:
            method = "GET" if access == "read" else "POST"
            try:
                await self.request(method, f"{path.rstrip('/')}/test")
            except AlmaError as e:
                raise AlmaAccessError(path, access, e) from e
            logger.debug(f"API key has {access} access to {path}")

    async def run_batch(
        self,
        items: Iterable[BatchItem[TIn]],
        operation: Callable[[TIn], Awaitable[TOut]],
        description: str = "item",
    ) -> BatchReport[TOut]:
        """Run a per-item operation through a fresh executor bound to this client's budget."""
        executor = BatchExecutor(self.budget, self.threshold, self.cancel_event, self.concurrency)
        return await executor.run(items, operation, description)

    async def get_set(self, set_id: str) -> AlmaSet:
        data = await self.request("GET", f"{SETS_PATH}/{quote(set_id, safe='')}")
        return AlmaSet.from_json(data)

    async def resolve_set(self, name: str | None = None, set_id: str | None = None) -> AlmaSet:
        """
        Find a set by ID, or by exact name.

        Raises:
            ValueError: unless exactly one of name and set_id is given
            AlmaLookupError: no set, or more than one set, has that name
            AlmaAbortedError: the name search stopped on budget exhaustion or cancellation
        """
        if bool(name) == bool(set_id):
            raise ValueError("exactly one of a set name or a set ID is required")
        if set_id:
            return await self.get_set(set_id)

        assert name is not None  # Type checker hint - already checked above

        async def fetch_page(offset: int, limit: int) -> tuple[list[AlmaSet], int | None]:
            params = {"q": f"name~{name}", "limit": str(limit), "offset": str(offset)}
            data = await self.request("GET", SETS_PATH, params=params)
            return [AlmaSet.from_json(entry) for entry in data.get("set") or []], data.get("total_record_count")

        report = await fetch_pages(
            fetch_page,
            key=lambda alma_set: alma_set.id,
            budget=self.budget,
            threshold=self.threshold,
            cancel_event=self.cancel_event,
            description="set search page",
        )
        if report.failures:
            raise AlmaLookupError(f"searching for set '{name}' failed: {report.failures[0].cause}")
        if report.aborted:
            raise AlmaAbortedError(f"searching for set '{name}'", report.abort_reason.value)

        matches = [alma_set for alma_set in report.values if alma_set.name == name]
        if not matches:
            raise AlmaLookupError(f"no set named '{name}' was found")
        if len(matches) > 1:
            ids = ", ".join(alma_set.id for alma_set in matches)
            raise AlmaLookupError(f"{len(matches)} sets are named '{name}' (IDs {ids}), use the set ID instead")
        return await self.get_set(matches[0].id)

    async def list_members(self, alma_set: AlmaSet) -> BatchReport[SetMember]:
        """Fetch every member of a set, page by page."""
        path = f"{SETS_PATH}/{quote(alma_set.id, safe='')}/members"

        async def fetch_page(offset: int, limit: int) -> tuple[list[SetMember], int | None]:
            data = await self.request("GET", path, params={"limit": str(limit), "offset": str(offset)})
            return [SetMember.from_json(entry) for entry in data.get("member") or []], data.get("total_record_count")

        report = await fetch_pages(
            fetch_page,
            key=lambda member: member.link or member.id,
            budget=self.budget,
            threshold=self.threshold,
            cancel_event=self.cancel_event,
            description="set member page",
        )
        logger.info(f"Set '{alma_set.name}' ({alma_set.id}): {report.summary('member')}")
        return report

    async def list_user_requests(self, members: Iterable[SetMember]) -> BatchReport[list[UserRequest]]:
        """Fetch the user requests on each item member. Use flat_values() for the combined list."""

        async def requests_on_item(member: SetMember) -> list[UserRequest]:
            data = await self.request("GET", f"{member.link.rstrip('/')}/requests")
            return [UserRequest.from_json(entry, member.link) for entry in data.get("user_request") or []]

        items = [BatchItem(member.link, member) for member in members]
        return await self.run_batch(items, requests_on_item, "item request listing")

    async def cancel_user_requests(
        self, requests: Iterable[UserRequest], reason: str, note: str = ""
    ) -> BatchReport[UserRequest]:
        """Cancel each request. A request is cancelled iff it appears in the report's successes."""
        params = {"reason": reason, "notify_user": "false"}
        if note:
            params["note"] = note

        async def cancel(request: UserRequest) -> UserRequest:
            await self.request("DELETE", request.link, params=params)
            return request

        items = [BatchItem(request.link, request) for request in requests]
        return await self.run_batch(items, cancel, "request cancellation")

    async def scan_in_items(
        self, members: Iterable[SetMember], library: str, circ_desk: str, department: str | None = None
    ) -> BatchReport[str]:
        """Scan in each item member. Success values are the scanned item barcodes."""
        params = {"op": "scan", "library": library, "circ_desk": circ_desk}
        if department:
            params["department"] = department

        async def scan_in(member: SetMember) -> str:
            data = await self.request("POST", member.link, params=params)
            return (data.get("item_data") or {}).get("barcode", "")

        items = [BatchItem(member.link, member) for member in members]
        return await self.run_batch(items, scan_in, "item scan-in")

    async def code_table(self, name: str) -> list[CodeTableRow]:
        data: dict[str, Any] = await self.request("GET", f"{CODE_TABLES_PATH}/{quote(name, safe='')}")
        return [CodeTableRow.from_json(row) for row in data.get("row") or []]
