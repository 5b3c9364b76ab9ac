"""
Async client for the Épicerie HTTP API.

Every call returns a Result(data, error) and never raises across this
boundary. The admin session is an explicit object handed to the client;
persisting it between runs is the job of an optional SessionStore.
"""
import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

_logger = logging.getLogger(__name__)

STORAGE_KEY = "admin_session"


class RequestFailed(Exception):
    pass


@dataclass
class AdminSession:
    id: int
    username: str
    email: str
    session_token: str
    expires_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdminSession":
        return cls(
            id=data["id"],
            username=data["username"],
            email=data.get("email", ""),
            session_token=data["session_token"],
            expires_at=data["expires_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def expires(self) -> datetime:
        value = datetime.fromisoformat(self.expires_at)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires() <= now


class SessionStore:
    """JSON file holding the admin session under a fixed key."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError:
            _logger.warning("Session store unreadable, ignoring | path=%s", self.path)
            return {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def load(self) -> Optional[AdminSession]:
        """Restore the stored session, dropping it if it has already expired."""
        raw = self._read().get(STORAGE_KEY)
        if not raw:
            return None
        try:
            session = AdminSession.from_dict(raw)
            expired = session.is_expired()
        except (KeyError, TypeError, ValueError):
            expired = True
        if expired:
            self.clear()
            return None
        return session

    def save(self, session: AdminSession) -> None:
        data = self._read()
        data[STORAGE_KEY] = session.to_dict()
        self._write(data)

    def clear(self) -> None:
        data = self._read()
        if data.pop(STORAGE_KEY, None) is not None:
            self._write(data)


@dataclass
class Result:
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EpicerieClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        session: Optional[AdminSession] = None,
        store: Optional[SessionStore] = None,
        http: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store
        if session is None and store is not None:
            session = store.load()
        self.session = session
        self._http = http
        self._owns_http = http is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    def _client(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
        return self._http

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.session is not None:
            headers["Authorization"] = f"Bearer {self.session.session_token}"
        return headers

    async def _request(self, method: str, endpoint: str, body: Any = None, params=None) -> Any:
        url = f"{self.base_url}{endpoint}"
        kwargs: Dict[str, Any] = {"headers": self._headers()}
        if params:
            kwargs["params"] = params
        if body is not None:
            kwargs["data"] = json.dumps(body)
        async with self._client().request(method, url, **kwargs) as response:
            try:
                payload = await response.json(content_type=None)
            except ValueError:
                payload = None
            if response.status >= 400:
                message = payload.get("error") if isinstance(payload, dict) else None
                raise RequestFailed(message or "Request failed")
            return payload

    async def _call(self, fallback: str, method: str, endpoint: str, body: Any = None, params=None) -> Result:
        try:
            data = await self._request(method, endpoint, body, params)
        except RequestFailed as e:
            return Result(error=str(e))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            _logger.warning("%s %s failed | err=%s", method, endpoint, e)
            return Result(error=fallback)
        return Result(data=data)

    # ---------- Auth ----------

    async def authenticate_admin(self, username: str, password: str) -> Result:
        result = await self._call(
            "Authentication failed", "POST", "/api/auth/login", {"username": username, "password": password}
        )
        if result.ok:
            try:
                self.session = AdminSession.from_dict(result.data)
            except (KeyError, TypeError):
                return Result(error="Authentication failed")
            if self.store is not None:
                self.store.save(self.session)
        return result

    async def logout(self) -> Result:
        token = self.session.session_token if self.session else None
        result = await self._call("Logout failed", "POST", "/api/auth/logout", {"token": token})
        # Local credentials go even when the server could not be reached
        self.session = None
        if self.store is not None:
            self.store.clear()
        return result

    # ---------- Products ----------

    async def get_public_products(self, tag: Optional[str] = None) -> Result:
        params = {"tag": tag} if tag else None
        return await self._call("Failed to fetch products", "GET", "/api/products/public", params=params)

    async def get_tags(self) -> Result:
        return await self._call("Failed to fetch tags", "GET", "/api/products/tags")

    async def get_all_products(self) -> Result:
        return await self._call("Failed to fetch products", "GET", "/api/products")

    async def create_product(self, product: Dict[str, Any]) -> Result:
        return await self._call("Failed to create product", "POST", "/api/products", product)

    async def update_product(self, product_id: int, product: Dict[str, Any]) -> Result:
        return await self._call("Failed to update product", "PUT", f"/api/products/{product_id}", product)

    async def delete_product(self, product_id: int) -> Result:
        return await self._call("Failed to delete product", "DELETE", f"/api/products/{product_id}")

    # ---------- Orders ----------

    async def get_all_orders(self) -> Result:
        return await self._call("Failed to fetch orders", "GET", "/api/orders")

    async def get_order_items(self, order_id: int) -> Result:
        return await self._call("Failed to fetch order items", "GET", f"/api/orders/{order_id}/items")

    async def update_order_status(self, order_id: int, status: str) -> Result:
        return await self._call(
            "Failed to update order status", "PUT", f"/api/orders/{order_id}/status", {"status": status}
        )

    async def create_order(
        self,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
        delivery_address: str,
        items: List[Dict[str, Any]],
        total_amount: float,
        notes: Optional[str] = None,
    ) -> Result:
        body = {
            "customer_name": customer_name,
            "customer_email": customer_email,
            "customer_phone": customer_phone,
            "delivery_address": delivery_address,
            "items": items,
            "total_amount": total_amount,
        }
        if notes is not None:
            body["notes"] = notes
        return await self._call("Failed to create order", "POST", "/api/orders", body)

    async def health(self) -> Result:
        return await self._call("Backend unreachable", "GET", "/health")
