# flow_designer/db/repositories/flow_repository.py
import asyncio
import hashlib
import json
from pathlib import Path
from typing import Any, Protocol


class FlowStore(Protocol):
    async def load(self, workspace_id: str) -> dict[str, Any] | None: ...

    async def save(self, workspace_id: str, state: dict[str, Any]) -> None: ...


class InMemoryFlowStore:
    def __init__(self):
        self.states: dict[str, dict[str, Any]] = {}

    async def load(self, workspace_id: str) -> dict[str, Any] | None:
        state = self.states.get(workspace_id)
        return json.loads(json.dumps(state)) if state is not None else None

    async def save(self, workspace_id: str, state: dict[str, Any]) -> None:
        self.states[workspace_id] = json.loads(json.dumps(state))


class JsonFileFlowStore:
    """Keeps one `<sha256 of workspace id>.json` document per workspace under `base_dir`."""

    def __init__(self, base_dir: Path | None = None):
        default_dir = Path(__file__).resolve().parents[2] / "data" / "flows"
        self.base_dir = base_dir or default_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def path_for(self, workspace_id: str) -> Path:
        # Hashed so that distinct workspace ids never share a file.
        digest = hashlib.sha256(workspace_id.encode("utf-8")).hexdigest()
        return self.base_dir / f"{digest}.json"

    async def load(self, workspace_id: str) -> dict[str, Any] | None:
        path = self.path_for(workspace_id)

        def _read() -> Any:
            if not path.exists():
                return None
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)

        async with self._lock:
            try:
                data = await asyncio.to_thread(_read)
            except json.JSONDecodeError:
                return None
        return data if isinstance(data, dict) else None

    async def save(self, workspace_id: str, state: dict[str, Any]) -> None:
        path = self.path_for(workspace_id)

        def _write() -> None:
            with path.open("w", encoding="utf-8") as handle:
                json.dump(state, handle, ensure_ascii=False, indent=2)

        async with self._lock:
            await asyncio.to_thread(_write)
