"""Ghost CMS client: Content API reads, Admin API post creation."""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

import requests
from pydantic import BaseModel

from ..errors import ExternalServiceError

logger = logging.getLogger("mealplanner.ingest")

ADMIN_TOKEN_TTL_SEC = 5 * 60


class GhostTag(BaseModel):
    id: str = ""
    name: str
    slug: str = ""


class GhostPost(BaseModel):
    id: str
    title: str = ""
    html: Optional[str] = ""
    updated_at: Optional[str] = ""
    tags: list[GhostTag] = []

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def admin_token(admin_key: str, now: Optional[int] = None) -> str:
    """Short-lived HS256 JWT for the Admin API from an `id:secret` key."""
    parts = admin_key.split(":")
    if len(parts) != 2:
        raise ValueError("invalid admin key format: expected id:secret")
    key_id, secret_hex = parts
    secret = bytes.fromhex(secret_hex)

    iat = int(now if now is not None else time.time())
    header = {"alg": "HS256", "typ": "JWT", "kid": key_id}
    claims = {"iat": iat, "exp": iat + ADMIN_TOKEN_TTL_SEC, "aud": "/v3/admin/"}
    signing_input = ".".join(
        _b64url(json.dumps(part, separators=(",", ":")).encode("utf-8")) for part in (header, claims)
    )
    signature = hmac.new(secret, signing_input.encode("ascii"), hashlib.sha256).digest()
    return f"{signing_input}.{_b64url(signature)}"


class GhostClient:
    def __init__(
        self,
        base_url: str,
        content_key: str,
        admin_key: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.content_key = content_key
        self.admin_key = admin_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_recipes(self) -> list[GhostPost]:
        """All posts, following `meta.pagination.next` until it is null."""
        posts: list[GhostPost] = []
        page: Optional[int] = 1
        while page is not None:
            url = f"{self.base_url}/ghost/api/v3/content/posts/"
            params = {"key": self.content_key, "page": page, "include": "tags"}
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as e:
                raise ExternalServiceError("ghost", f"content api request failed: {e}") from e
            if resp.status_code != 200:
                raise ExternalServiceError("ghost", f"content api error: status {resp.status_code}", resp.status_code)

            data = resp.json()
            posts.extend(GhostPost.model_validate(p) for p in data.get("posts", []))
            page = (data.get("meta") or {}).get("pagination", {}).get("next")
        logger.info("Fetched %d posts from Ghost", len(posts))
        return posts

    def create_post(self, title: str, html: str, tags: list[str], publish: bool = True) -> GhostPost:
        if not self.admin_key:
            raise ExternalServiceError("ghost", "admin api key is not configured")
        try:
            token = admin_token(self.admin_key)
        except ValueError as e:
            raise ExternalServiceError("ghost", str(e)) from e

        body = {
            "posts": [
                {
                    "title": title,
                    "html": html,
                    "status": "published" if publish else "draft",
                    "tags": [{"name": t} for t in tags],
                }
            ]
        }
        url = f"{self.base_url}/ghost/api/v3/admin/posts/"
        headers = {"Authorization": f"Ghost {token}", "Content-Type": "application/json"}
        try:
            resp = self.session.post(url, params={"source": "html"}, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError("ghost", f"admin api request failed: {e}") from e
        if resp.status_code not in (200, 201):
            raise ExternalServiceError(
                "ghost", f"admin api error: status {resp.status_code}, body: {resp.text[:500]}", resp.status_code
            )

        created = resp.json().get("posts") or []
        if not created:
            raise ExternalServiceError("ghost", "no post returned from api")
        return GhostPost.model_validate(created[0])
