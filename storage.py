"""
storage.py
Persistence gateway: one JSON document per (kind, user), remote store first,
local cache as the fallback tier.

Reads try the remote store under a timeout and fall back to the local cache;
a missing document anywhere is a new user, not an error. Writes mirror into
the local cache first and then make a single remote attempt whose failure is
logged and reported through the returned status, never raised.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any

from blobstore import BlobStore, HttpBlobStore
from db import LocalCache
from models import TemplateVisit, User, Visit, parse_template_visit, parse_visit, utc_now_iso

logger = logging.getLogger(__name__)

DOCUMENT_KINDS = ("patients", "templates", "users")

REMOTE_OK = "remote-ok"
REMOTE_FAILED = "remote-failed"
LOCAL_ONLY = "local-only"

SOURCE_REMOTE = "remote"
SOURCE_CACHE = "cache"
SOURCE_EMPTY = "empty"

WeeklyTemplates = dict[int, list[TemplateVisit]]


def document_name(kind: str, user_id: str | None = None) -> str:
    if kind not in DOCUMENT_KINDS:
        raise ValueError(f"unknown document kind {kind!r}")
    if kind == "users":
        return "users.json"
    if not user_id:
        raise ValueError("user_id is required")
    return f"{kind}-{user_id}.json"


class _RemoteMissing(Exception):
    pass


@dataclass(frozen=True)
class ReadResult:
    payload: Any
    source: str

    @property
    def found(self) -> bool:
        return self.source != SOURCE_EMPTY


@dataclass(frozen=True)
class VisitLoad:
    visits: list[Visit] = field(default_factory=list)
    is_new_user: bool = True
    last_updated: str | None = None
    source: str = SOURCE_EMPTY
    dropped: int = 0


def decode_visits(payload: Any) -> tuple[list[Visit], int]:
    """Returns (valid visits, number of records dropped by the shape check)."""
    if isinstance(payload, dict):
        raw = payload.get("patients")
    else:
        # the cache of older clients held the bare array
        raw = payload
    if not isinstance(raw, list):
        return [], 0
    visits: list[Visit] = []
    for item in raw:
        visit = parse_visit(item)
        if visit is not None:
            visits.append(visit)
    return visits, len(raw) - len(visits)


def decode_templates(payload: Any) -> WeeklyTemplates:
    """
    Template documents come in three shapes, tried in this order:

    1. ``{"templates": {day: [...]}}`` (current)
    2. ``{"template": {day: [...]}}`` (oldest client)
    3. ``{day: [...]}`` (bare mapping)

    Day keys outside 0-6 and entries failing the shape check are dropped.
    """
    if not isinstance(payload, dict):
        return {}
    if isinstance(payload.get("templates"), dict):
        mapping = payload["templates"]
    elif isinstance(payload.get("template"), dict):
        mapping = payload["template"]
    else:
        mapping = payload

    templates: WeeklyTemplates = {}
    for key, entries in mapping.items():
        try:
            day = int(key)
        except (TypeError, ValueError):
            continue
        if not 0 <= day <= 6 or not isinstance(entries, list):
            continue
        parsed = [e for e in (parse_template_visit(raw) for raw in entries) if e is not None]
        templates[day] = parsed
    return templates


def encode_templates(templates: WeeklyTemplates) -> dict[str, Any]:
    return {
        "templates": {
            str(day): [entry.to_dict() for entry in entries]
            for day, entries in sorted(templates.items())
        }
    }


def decode_users(payload: Any) -> dict[str, User]:
    if isinstance(payload, dict) and isinstance(payload.get("users"), (dict, list)):
        payload = payload["users"]
    if isinstance(payload, dict):
        raw_users = list(payload.values())
    elif isinstance(payload, list):
        raw_users = payload
    else:
        return {}

    users: dict[str, User] = {}
    for raw in raw_users:
        if not isinstance(raw, dict) or not raw.get("email") or raw.get("id") is None:
            continue
        user = User.from_dict(raw)
        users[user.email] = user
    return users


class PersistenceGateway:
    def __init__(
        self,
        cache: LocalCache,
        remote: BlobStore | None = None,
        timeout: float = 8.0,
    ) -> None:
        self.cache = cache
        self.remote = remote
        self.timeout = timeout
        self._readers = ThreadPoolExecutor(max_workers=2, thread_name_prefix="blob-read")

    # ---------- raw documents ----------

    def write(self, name: str, payload: Any) -> str:
        text = json.dumps(payload, ensure_ascii=False)
        self.cache.set(name, text)

        if self.remote is None:
            logger.debug("Blob store not configured, %s saved locally only", name)
            return LOCAL_ONLY
        try:
            ref = self.remote.put(name, text.encode("utf-8"), content_type="application/json", overwrite=True)
        except Exception as exc:
            logger.warning("Remote save of %s failed, local copy kept: %s", name, exc)
            return REMOTE_FAILED
        logger.debug("Saved %s to %s", name, ref.url)
        return REMOTE_OK

    def _fetch_remote(self, name: str) -> Any:
        ref = self.remote.find(name)
        if ref is None:
            raise _RemoteMissing(name)
        return json.loads(self.remote.get(ref.url))

    def read(self, name: str) -> ReadResult:
        if self.remote is not None:
            future = self._readers.submit(self._fetch_remote, name)
            try:
                payload = future.result(timeout=self.timeout)
            except FutureTimeout:
                # the worker keeps running; whatever it returns later is dropped
                logger.warning("Remote read of %s timed out after %.1fs, using local cache", name, self.timeout)
            except _RemoteMissing:
                logger.info("No remote document %s, trying local cache", name)
            except Exception as exc:
                logger.warning("Remote read of %s failed, using local cache: %s", name, exc)
            else:
                if isinstance(payload, (dict, list)):
                    return ReadResult(payload, SOURCE_REMOTE)
                logger.warning("Remote document %s is malformed, using local cache", name)

        text = self.cache.get(name)
        if text is not None:
            try:
                return ReadResult(json.loads(text), SOURCE_CACHE)
            except ValueError:
                logger.warning("Local copy of %s is not valid JSON, ignoring it", name)
        return ReadResult(None, SOURCE_EMPTY)

    # ---------- typed documents ----------

    def load_visits(self, user_id: str) -> VisitLoad:
        result = self.read(document_name("patients", user_id))
        if not result.found:
            logger.info("No visits stored for user %s, starting empty", user_id)
            return VisitLoad()

        visits, dropped = decode_visits(result.payload)
        if dropped:
            logger.warning("Dropped %d malformed visit record(s) for user %s", dropped, user_id)
        last_updated = result.payload.get("lastUpdated") if isinstance(result.payload, dict) else None
        logger.info("Loaded %d visits for user %s from %s", len(visits), user_id, result.source)
        return VisitLoad(
            visits=visits,
            is_new_user=False,
            last_updated=last_updated,
            source=result.source,
            dropped=dropped,
        )

    def save_visits(self, user_id: str, visits: list[Visit] | tuple[Visit, ...]) -> str:
        payload = {
            "userId": user_id,
            "patients": [v.to_dict() for v in visits],
            "lastUpdated": utc_now_iso(),
        }
        return self.write(document_name("patients", user_id), payload)

    def load_templates(self, user_id: str) -> WeeklyTemplates:
        result = self.read(document_name("templates", user_id))
        return decode_templates(result.payload)

    def save_templates(self, user_id: str, templates: WeeklyTemplates) -> str:
        return self.write(document_name("templates", user_id), encode_templates(templates))

    def load_users(self) -> dict[str, User]:
        return decode_users(self.read(document_name("users")).payload)

    def save_users(self, users: dict[str, User]) -> str:
        payload = {email: user.to_dict() for email, user in users.items()}
        return self.write(document_name("users"), payload)

    def close(self) -> None:
        self._readers.shutdown(wait=False)
        if isinstance(self.remote, HttpBlobStore):
            self.remote.close()


def build_gateway(settings) -> PersistenceGateway:
    cache = LocalCache(settings.CACHE_FILE)
    remote = None
    if settings.BLOB_BASE_URL:
        remote = HttpBlobStore(settings.BLOB_BASE_URL, settings.BLOB_TOKEN, timeout=settings.BLOB_TIMEOUT)
    else:
        logger.warning("BLOB_BASE_URL not set, data is kept in the local cache only")
    return PersistenceGateway(cache, remote, timeout=settings.BLOB_TIMEOUT)
