"""Shared fixtures: an in-memory backend and per-device sync harnesses."""

import copy
import uuid
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from promptbank.errors import ConflictError, SyncConflictType
from promptbank.models import DeviceInfo, Prompt, format_timestamp, record_edit, utcnow
from promptbank.storage.prompt_store import FilePromptStore
from promptbank.sync.content_hash import compute_content_hash
from promptbank.sync.engine import SyncEngine, SyncGuard
from promptbank.sync.http_transport import build_upload_body
from promptbank.sync.protocol import RemotePrompt, UploadResult, UserQuota
from promptbank.sync.quota import QuotaCheck, QuotaGuard
from promptbank.sync.state_store import SyncStateStore
from promptbank.sync.team import FULL_ACCESS, WritePermission
from promptbank.sync.transport import Transport


class FakeBackend:
    """In-memory stand-in for the cloud prompt table."""

    def __init__(self, prompt_limit: int = 1000, storage_limit: int = 10 * 1024 * 1024):
        self.rows: dict[str, dict] = {}
        self.prompt_limit = prompt_limit
        self.storage_limit = storage_limit
        self.storage_bytes = 0
        self.upload_calls = 0
        self.delete_calls = 0

    def create_or_update(self, body: dict) -> UploadResult:
        self.upload_calls += 1
        now = format_timestamp(utcnow())
        cloud_id = body.get("cloudId")
        if cloud_id is None:
            cloud_id = str(uuid.uuid4())
            self.rows[cloud_id] = {
                "cloud_id": cloud_id,
                "local_id": body["local_id"],
                "version": 1,
                "created_at": now,
                "updated_at": now,
                "deleted_at": None,
                **self._fields(body),
            }
            return UploadResult(cloud_id=cloud_id, version=1)

        row = self.rows.get(cloud_id)
        if row is None or row["deleted_at"] is not None:
            raise ConflictError(SyncConflictType.PROMPT_DELETED, "Prompt was deleted")
        if body.get("expectedVersion") != row["version"]:
            raise ConflictError(
                SyncConflictType.VERSION_CONFLICT,
                "Version mismatch",
                {"expectedVersion": body.get("expectedVersion"), "actualVersion": row["version"]},
            )
        row.update(self._fields(body))
        row["version"] += 1
        row["updated_at"] = now
        return UploadResult(cloud_id=cloud_id, version=row["version"])

    def delete(self, cloud_id: str) -> None:
        self.delete_calls += 1
        row = self.rows.get(cloud_id)
        if row is not None and row["deleted_at"] is None:
            row["deleted_at"] = format_timestamp(utcnow())
            row["version"] += 1

    def restore(self, cloud_id: str) -> UploadResult:
        row = self.rows[cloud_id]
        row["deleted_at"] = None
        row["version"] += 1
        return UploadResult(cloud_id=cloud_id, version=row["version"])

    def edit(self, cloud_id: str, device_name: str = "Web", **fields) -> None:
        """Simulate an edit made through another client."""
        row = self.rows[cloud_id]
        row.update(fields)
        probe = Prompt(id="probe", title=row["title"], content=row["content"], category=row["category"])
        row["content_hash"] = compute_content_hash(probe)
        row["version"] += 1
        row["updated_at"] = format_timestamp(utcnow())
        row["sync_metadata"] = {"lastModifiedDeviceName": device_name}

    def fetch(self, include_deleted: bool) -> list[RemotePrompt]:
        return [
            RemotePrompt.model_validate(copy.deepcopy(row))
            for row in self.rows.values()
            if include_deleted or row["deleted_at"] is None
        ]

    def active(self) -> list[dict]:
        return [row for row in self.rows.values() if row["deleted_at"] is None]

    def quota(self) -> UserQuota:
        return UserQuota(
            prompt_count=len(self.active()),
            prompt_limit=self.prompt_limit,
            storage_bytes=self.storage_bytes,
            storage_limit=self.storage_limit,
        )

    @staticmethod
    def _fields(body: dict) -> dict:
        return {
            "content_hash": body["contentHash"],
            "title": body["title"],
            "content": body["content"],
            "description": body["description"],
            "category": body["category"],
            "prompt_order": body["prompt_order"],
            "category_order": body["category_order"],
            "variables": body["variables"],
            "metadata": body["metadata"],
            "sync_metadata": body["sync_metadata"],
        }


class FakeTransport(Transport):
    """Transport that talks to a FakeBackend in-process."""

    def __init__(
        self,
        backend: FakeBackend,
        device: DeviceInfo,
        permission: WritePermission = FULL_ACCESS,
        scope: str | None = None,
    ):
        self.backend = backend
        self.device = device
        self.permission = permission
        self.scope = scope or f"fake:{device.device_id}"
        self.registered = 0

    @property
    def scope_key(self) -> str:
        return self.scope

    def fetch_remote_prompts(self, include_deleted: bool = True) -> list[RemotePrompt]:
        return self.backend.fetch(include_deleted)

    def upload(self, prompt, cloud_id=None, expected_version=None) -> UploadResult:
        body = build_upload_body(prompt, self.device, cloud_id, expected_version)
        return self.backend.create_or_update(body)

    def delete(self, cloud_id: str) -> None:
        self.backend.delete(cloud_id)

    def restore(self, cloud_id: str) -> UploadResult:
        return self.backend.restore(cloud_id)

    def check_quota(self, create_count: int, upload_bytes: int) -> QuotaCheck:
        return QuotaGuard().check(self.backend.quota(), create_count, upload_bytes)

    def register_workspace(self) -> None:
        self.registered += 1

    def write_permission(self) -> WritePermission:
        return self.permission


class DeviceHarness:
    """One device: its own prompt store, baseline and engine."""

    def __init__(
        self,
        base_dir: Path,
        name: str,
        backend: FakeBackend,
        permission: WritePermission = FULL_ACCESS,
        guard: SyncGuard | None = None,
    ):
        self.device = DeviceInfo(device_id=f"dev-{name.lower()}", device_name=name)
        self.storage_dir = base_dir / name
        self.store = FilePromptStore(self.storage_dir)
        self.state_store = SyncStateStore(self.storage_dir)
        self.transport = FakeTransport(backend, self.device, permission)
        self.engine = SyncEngine(
            transport=self.transport,
            state_store=self.state_store,
            local_store=self.store,
            device=self.device,
            user_id="user@example.com",
            workspace_id="ws-1",
            guard=guard,
        )

    def add(self, title: str, content: str, category: str = "General") -> Prompt:
        return self.store.save(Prompt.create(title, content, category))

    def edit(self, prompt_id: str, **changes) -> Prompt:
        prompt = self.store.get(prompt_id)
        return self.store.save(record_edit(prompt, self.device, **changes))

    def delete(self, prompt_id: str) -> bool:
        return self.store.delete(prompt_id)

    def sync(self):
        return self.engine.sync()

    def plan(self):
        return self.engine.preview()

    def titles(self) -> list[str]:
        return sorted(p.title for p in self.store.list())

    def contents(self) -> list[str]:
        return sorted(p.content for p in self.store.list())


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backend():
    """Create an empty in-memory backend."""
    return FakeBackend()


@pytest.fixture
def make_device(temp_dir, backend):
    """Factory for device harnesses sharing one backend."""

    def factory(name: str, permission: WritePermission = FULL_ACCESS) -> DeviceHarness:
        return DeviceHarness(temp_dir, name, backend, permission)

    return factory
