"""
JSON-document storage collaborator.

Each request lives in its own document, `<dir>/requests/<request_id>.json`,
holding the request and its response (if any):

    {"request": {...}, "response": {...} | null}

Keeping the pair in one document means a lifecycle write is a single file
replace (uniquely named temporary file + `Path.replace`), so readers never
observe a status without its response or vice versa.

Several processes may share one directory (CLI runs, API workers). Each write
therefore holds the in-process lock for the request id and an OS file lock on
`<dir>/locks/<request_id>.lock` (`filelock`), so the compare-and-swap in
`LockingRequestStore` holds across processes too. Lock files are left in place;
removing one while another process waits on it would split the lock.

Unreadable or inconsistent documents are logged and skipped by listings so one
bad file does not hide every other request from the map.
"""

from __future__ import annotations

import json
import logging
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from filelock import FileLock
from pydantic import ValidationError

from nearask.domain.errors import InvariantViolation
from nearask.domain.models import ACTIVE, Request, Response
from nearask.lifecycle.guard import check_invariants
from nearask.storage.base import LockingRequestStore

logger = logging.getLogger(__name__)

_Aggregate = tuple[Request, Response | None]


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        # One scratch file per writer; a shared `.tmp` name could be clobbered by another process.
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(json.dumps(payload, ensure_ascii=False))
        tmp_path.replace(path)
    except Exception:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise


class JsonDirectoryStore(LockingRequestStore):
    def __init__(self, base_dir: str | Path, *, allow_self_answer: bool = True, lock_timeout_s: float = 10.0):
        super().__init__(allow_self_answer=allow_self_answer)
        self._base_dir = Path(base_dir)
        self._requests_dir = self._base_dir / "requests"
        self._locks_dir = self._base_dir / "locks"
        self._requests_dir.mkdir(parents=True, exist_ok=True)
        self._locks_dir.mkdir(parents=True, exist_ok=True)
        self._lock_timeout_s = lock_timeout_s

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _check_id(self, request_id: str) -> str:
        # Ids are generated hex strings; refuse anything that could escape the directory.
        if not request_id or "/" in request_id or "\\" in request_id or request_id.startswith("."):
            raise ValueError(f"Invalid request id: {request_id!r}")
        return request_id

    def _path(self, request_id: str) -> Path:
        return self._requests_dir / f"{self._check_id(request_id)}.json"

    @contextmanager
    def _atomic(self, request_id: str) -> Iterator[None]:
        with super()._atomic(request_id):
            try:
                lock_path = self._locks_dir / f"{self._check_id(request_id)}.lock"
            except ValueError:
                # No document can exist under such an id; the guard reports NotFound.
                yield
                return
            with FileLock(str(lock_path), timeout=self._lock_timeout_s):
                yield

    def _read(self, path: Path, *, check: bool = True) -> _Aggregate | None:
        """Parse one document; None when unreadable, InvariantViolation when inconsistent (unless `check=False`)."""
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            request = Request.model_validate(raw["request"])
            response = Response.model_validate(raw["response"]) if raw.get("response") else None
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.warning("Skipping unreadable request document %s: %s", path.name, exc)
            return None
        if check:
            check_invariants(request, response)
        return request, response

    def _iter_documents(self) -> list[_Aggregate]:
        out: list[_Aggregate] = []
        for path in sorted(self._requests_dir.glob("*.json")):
            try:
                doc = self._read(path)
            except InvariantViolation as exc:
                logger.warning("Skipping inconsistent request document %s: %s", path.name, exc)
                continue
            if doc is not None:
                out.append(doc)
        # Creation order; ids break ties so listings are deterministic.
        out.sort(key=lambda d: (d[0].created_at, d[0].id))
        return out

    def _load(self, request_id: str, *, check: bool = True) -> tuple[Request | None, Response | None]:
        try:
            path = self._path(request_id)
        except ValueError:
            return None, None
        doc = self._read(path, check=check)
        if doc is None:
            return None, None
        return doc

    def _load_unchecked(self, request_id: str) -> tuple[Request | None, Response | None]:
        return self._load(request_id, check=False)

    def _save(self, request: Request, response: Response | None) -> None:
        payload = {
            "request": request.model_dump(mode="json"),
            "response": response.model_dump(mode="json") if response is not None else None,
        }
        _write_json(self._path(request.id), payload)

    def _insert(self, request: Request) -> None:
        self._save(request, None)

    def _remove(self, request_id: str) -> None:
        self._path(request_id).unlink(missing_ok=True)

    def get_response(self, response_id: str) -> Response | None:
        for _, response in self._iter_documents():
            if response is not None and response.id == response_id:
                return response
        return None

    def get_active_requests(self) -> list[Request]:
        return [req for req, _ in self._iter_documents() if req.status == ACTIVE]

    def list_requests_by_owner(self, owner_id: str) -> list[Request]:
        return [req for req, _ in self._iter_documents() if req.owner_id == owner_id]

    def list_responses_by_responder(self, responder_id: str) -> list[Response]:
        return [resp for _, resp in self._iter_documents() if resp is not None and resp.responder_id == responder_id]
