from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from content_studio.config import settings
from content_studio.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _safe_filename(name: str) -> str:
    return os.path.basename(name).replace("..", "_")


def _check_id(value: str, label: str) -> str:
    # Ids end up in filesystem paths.
    if not _ID_RE.match(value or ""):
        raise NotFoundError(f"{label} not found", details={label: value})
    return value


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@dataclass
class UserRecord:
    user_id: str
    display_name: str
    email: str
    role: str  # admin|instructor|student
    studio_enabled: bool
    studio_expires_at: str | None
    password_hash: str
    created_at: str
    updated_at: str

    def public_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("password_hash", None)
        return data


class UserStore:
    def __init__(self, root_dir: Path | None = None) -> None:
        self.root_dir = Path(root_dir or settings.data_dir).resolve()
        self.users_dir = self.root_dir / "users"
        self.users_dir.mkdir(parents=True, exist_ok=True)

    def create_user(
        self,
        email: str,
        password_hash: str,
        display_name: str,
        role: str,
        studio_enabled: bool,
        studio_expires_at: str | None,
    ) -> UserRecord:
        email = email.strip()
        if self.find_by_email(email) is not None:
            raise InvalidInputError(f"A user with email {email} already exists", code="email_taken")
        now = _now_iso()
        user = UserRecord(
            user_id=_new_id(),
            display_name=display_name,
            email=email,
            role=role,
            studio_enabled=studio_enabled,
            studio_expires_at=studio_expires_at,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        self._write_user(user)
        return user

    def read_user(self, user_id: str) -> UserRecord:
        path = self.users_dir / f"{_check_id(user_id, 'user_id')}.json"
        if not path.exists():
            raise NotFoundError("user not found", details={"user_id": user_id})
        return UserRecord(**json.loads(path.read_text("utf-8")))

    def find_by_email(self, email: str) -> UserRecord | None:
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        for user in self.list_users():
            if user.email.lower() == wanted:
                return user
        return None

    def list_users(self) -> list[UserRecord]:
        out: list[UserRecord] = []
        for path in self.users_dir.glob("*.json"):
            try:
                out.append(UserRecord(**json.loads(path.read_text("utf-8"))))
            except (ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable user record %s: %s", path.name, exc)
        out.sort(key=lambda u: u.created_at, reverse=True)
        return out

    def update_user(self, user_id: str, **changes: Any) -> UserRecord:
        user = self.read_user(user_id)
        for key, value in changes.items():
            if not hasattr(user, key) or key in ("user_id", "created_at"):
                raise InvalidInputError(f"Unknown user field: {key}")
            setattr(user, key, value)
        user.updated_at = _now_iso()
        self._write_user(user)
        return user

    def delete_user(self, user_id: str) -> None:
        path = self.users_dir / f"{_check_id(user_id, 'user_id')}.json"
        if not path.exists():
            raise NotFoundError("user not found", details={"user_id": user_id})
        path.unlink()

    def _write_user(self, user: UserRecord) -> None:
        _write_json(self.users_dir / f"{user.user_id}.json", asdict(user))


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@dataclass
class Artifact:
    artifact_id: str
    title: str
    type: str
    content: Any
    status: str
    version: int
    created_at: str
    updated_at: str


@dataclass
class HistoryProject:
    project_id: str
    owner_id: str
    title: str
    type: str
    status: str
    created_at: str
    artifacts: list[Artifact] = field(default_factory=list)


class HistoryStore:
    def __init__(self, root_dir: Path | None = None) -> None:
        self.root_dir = Path(root_dir or settings.data_dir).resolve()
        self.history_dir = self.root_dir / "history"
        self.history_dir.mkdir(parents=True, exist_ok=True)

    def create_project(
        self,
        owner_id: str,
        title: str,
        project_type: str,
        artifact_title: str,
        artifact_type: str,
        content: Any,
    ) -> HistoryProject:
        now = _now_iso()
        proj = HistoryProject(
            project_id=_new_id(),
            owner_id=owner_id,
            title=title,
            type=project_type,
            status="completed",
            created_at=now,
            artifacts=[
                Artifact(
                    artifact_id=_new_id(),
                    title=artifact_title,
                    type=artifact_type,
                    content=content,
                    status="final",
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
            ],
        )
        self._write_project(proj)
        return proj

    def read_project(self, project_id: str) -> HistoryProject:
        path = self.history_dir / f"{_check_id(project_id, 'project_id')}.json"
        if not path.exists():
            raise NotFoundError("project not found", details={"project_id": project_id})
        return self._load(path)

    def list_projects(self, owner_id: str) -> list[HistoryProject]:
        out: list[HistoryProject] = []
        for path in self.history_dir.glob("*.json"):
            try:
                proj = self._load(path)
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("Skipping unreadable history record %s: %s", path.name, exc)
                continue
            if proj.owner_id == owner_id:
                out.append(proj)
        out.sort(key=lambda p: p.created_at, reverse=True)
        return out

    def update_artifact(self, owner_id: str, artifact_id: str, content: Any) -> Artifact:
        for proj in self.list_projects(owner_id):
            for art in proj.artifacts:
                if art.artifact_id != artifact_id:
                    continue
                art.content = content
                art.version += 1
                art.updated_at = _now_iso()
                self._write_project(proj)
                return art
        raise NotFoundError("artifact not found", details={"artifact_id": artifact_id})

    def delete_project(self, owner_id: str, project_id: str) -> None:
        proj = self.read_project(project_id)
        if proj.owner_id != owner_id:
            # Other users' projects are reported as missing.
            raise NotFoundError("project not found", details={"project_id": project_id})
        (self.history_dir / f"{project_id}.json").unlink()

    @staticmethod
    def _load(path: Path) -> HistoryProject:
        data = json.loads(path.read_text("utf-8"))
        artifacts = [Artifact(**a) for a in data.pop("artifacts", [])]
        return HistoryProject(**data, artifacts=artifacts)

    def _write_project(self, proj: HistoryProject) -> None:
        data = asdict(proj)
        data["artifacts"] = [asdict(a) for a in proj.artifacts]
        _write_json(self.history_dir / f"{proj.project_id}.json", data)


# ---------------------------------------------------------------------------
# Session assets and run manifests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    asset_id: str
    kind: str  # model|thumbnail|export|layers
    filename: str
    rel_path: str
    sha256: str
    created_at: str
    metadata: dict[str, Any]


class AssetStore:
    def __init__(self, root_dir: Path | None = None) -> None:
        self.root_dir = Path(root_dir or settings.data_dir).resolve()
        self.sessions_dir = self.root_dir / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def add_asset(
        self,
        session_id: str,
        kind: str,
        filename: str,
        content: bytes,
        metadata: dict[str, Any] | None = None,
    ) -> Asset:
        sess_dir = self._session_dir(session_id)
        asset_id = _new_id()
        filename = _safe_filename(filename)

        (sess_dir / "assets").mkdir(parents=True, exist_ok=True)
        rel_path = str(Path("assets") / f"{asset_id}_{filename}")
        abs_path = sess_dir / rel_path
        abs_path.write_bytes(content)

        asset = Asset(
            asset_id=asset_id,
            kind=kind,
            filename=filename,
            rel_path=rel_path,
            sha256=_sha256_file(abs_path),
            created_at=_now_iso(),
            metadata=metadata or {},
        )
        assets = self.list_assets(session_id)
        assets.append(asset)
        self._write_index(session_id, assets)
        return asset

    def list_assets(self, session_id: str) -> list[Asset]:
        index = self._session_dir(session_id) / "assets.json"
        if not index.exists():
            return []
        data = json.loads(index.read_text("utf-8"))
        return [Asset(**a) for a in data.get("assets", [])]

    def get_asset(self, session_id: str, asset_id: str) -> Asset:
        match = next((a for a in self.list_assets(session_id) if a.asset_id == asset_id), None)
        if match is None:
            raise NotFoundError("asset not found", details={"asset_id": asset_id})
        return match

    def read_bytes(self, session_id: str, asset: Asset) -> bytes:
        path = self.abs_asset_path(session_id, asset)
        if not path.exists():
            raise NotFoundError("asset file missing", details={"asset_id": asset.asset_id})
        return path.read_bytes()

    def abs_asset_path(self, session_id: str, asset: Asset) -> Path:
        return self._session_dir(session_id) / asset.rel_path

    def write_run_manifest(self, session_id: str, manifest: dict[str, Any]) -> Path:
        run_id = _new_id()
        path = self._session_dir(session_id) / "runs" / f"run_{run_id}.json"
        manifest = dict(manifest)
        manifest.setdefault("run_id", run_id)
        manifest.setdefault("created_at", _now_iso())
        _write_json(path, manifest)
        return path

    def list_run_manifests(self, session_id: str) -> list[dict[str, Any]]:
        runs_dir = self._session_dir(session_id) / "runs"
        out = [json.loads(p.read_text("utf-8")) for p in runs_dir.glob("run_*.json")]
        out.sort(key=lambda m: m.get("created_at", ""))
        return out

    def delete_session(self, session_id: str) -> None:
        sess_dir = self._session_dir(session_id).resolve()
        if not str(sess_dir).startswith(str(self.sessions_dir) + os.sep):
            raise ValueError("Refusing to delete outside sessions_dir")
        if sess_dir.exists():
            shutil.rmtree(sess_dir)

    def _session_dir(self, session_id: str) -> Path:
        return self.sessions_dir / _check_id(session_id, "session_id")

    def _write_index(self, session_id: str, assets: list[Asset]) -> None:
        _write_json(self._session_dir(session_id) / "assets.json", {"assets": [asdict(a) for a in assets]})
