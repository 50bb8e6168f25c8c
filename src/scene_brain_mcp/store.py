"""SQLite-backed storage for scenes, iteration records and chat messages.

WAL mode for concurrent reads. Each scene mutation and its iteration record
are written in one transaction, so a failed write leaves neither behind.
Iteration rows are kept when their scene is deleted; the delete record
itself points at the removed scene.

The blocking sqlite calls run on a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

from .errors import PersistenceError
from .models.context import ChatMessage
from .models.scene import Scene, SceneIteration, new_id
from .types import ChatRole

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS scenes (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    "order" INTEGER NOT NULL,
    name TEXT NOT NULL DEFAULT 'Scene',
    code TEXT NOT NULL,
    duration INTEGER NOT NULL,
    props TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_scenes_project ON scenes (project_id, "order");

CREATE TABLE IF NOT EXISTS scene_iterations (
    id TEXT PRIMARY KEY,
    scene_id TEXT NOT NULL,
    project_id TEXT NOT NULL,
    operation_type TEXT NOT NULL,
    user_prompt TEXT NOT NULL,
    brain_reasoning TEXT NOT NULL DEFAULT '',
    tool_reasoning TEXT,
    code_before TEXT,
    code_after TEXT,
    generation_time_ms INTEGER NOT NULL DEFAULT 0,
    model_used TEXT,
    message_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_iterations_project ON scene_iterations (project_id, created_at);
CREATE INDEX IF NOT EXISTS idx_iterations_scene ON scene_iterations (scene_id, created_at);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    image_urls TEXT NOT NULL DEFAULT '[]',
    seq INTEGER NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_project ON messages (project_id, seq);
"""

_SCENE_COLUMNS = 'id, project_id, "order", name, code, duration, props, created_at, updated_at'
_ITERATION_COLUMNS = (
    "id, scene_id, project_id, operation_type, user_prompt, brain_reasoning, "
    "tool_reasoning, code_before, code_after, generation_time_ms, model_used, "
    "message_id, created_at"
)


def _row_to_scene(row: tuple) -> Scene:
    return Scene(
        id=row[0],
        project_id=row[1],
        order=row[2],
        name=row[3],
        code=row[4],
        duration=row[5],
        props=json.loads(row[6]),
        created_at=datetime.fromisoformat(row[7]),
        updated_at=datetime.fromisoformat(row[8]),
    )


def _row_to_iteration(row: tuple) -> SceneIteration:
    return SceneIteration(
        id=row[0],
        scene_id=row[1],
        project_id=row[2],
        operation_type=row[3],
        user_prompt=row[4],
        brain_reasoning=row[5],
        tool_reasoning=row[6],
        code_before=row[7],
        code_after=row[8],
        generation_time_ms=row[9],
        model_used=row[10],
        message_id=row[11],
        created_at=datetime.fromisoformat(row[12]),
    )


def _iteration_params(it: SceneIteration) -> tuple:
    return (
        it.id,
        it.scene_id,
        it.project_id,
        it.operation_type,
        it.user_prompt,
        it.brain_reasoning,
        it.tool_reasoning,
        it.code_before,
        it.code_after,
        it.generation_time_ms,
        it.model_used,
        it.message_id,
        it.created_at.isoformat(),
    )


class SceneDB:
    """Synchronous SQLite persistence. Use through :class:`SceneStore`."""

    def __init__(self, db_path: str) -> None:
        path = Path(db_path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(_SCHEMA)

    # ── Scenes ───────────────────────────────────────────────────────────────

    def list_scenes(self, project_id: str) -> list[Scene]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_SCENE_COLUMNS} FROM scenes WHERE project_id = ? "
                'ORDER BY "order", created_at',
                (project_id,),
            ).fetchall()
        return [_row_to_scene(r) for r in rows]

    def get_scene(self, scene_id: str) -> Scene | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_SCENE_COLUMNS} FROM scenes WHERE id = ?",
                (scene_id,),
            ).fetchone()
        return _row_to_scene(row) if row else None

    def count_scenes(self, project_id: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM scenes WHERE project_id = ?",
                (project_id,),
            ).fetchone()
        return row[0]

    def insert_scene(
        self, scene: Scene, iteration: SceneIteration, started: float | None = None,
    ) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT INTO scenes ({_SCENE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    scene.id,
                    scene.project_id,
                    scene.order,
                    scene.name,
                    scene.code,
                    scene.duration,
                    json.dumps(scene.props),
                    scene.created_at.isoformat(),
                    scene.updated_at.isoformat(),
                ),
            )
            self._insert_iteration(iteration, started)

    def update_scene(
        self, scene: Scene, iteration: SceneIteration, started: float | None = None,
    ) -> bool:
        """Write name, code, duration and props. Returns False if the scene is gone."""
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE scenes SET name = ?, code = ?, duration = ?, props = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    scene.name,
                    scene.code,
                    scene.duration,
                    json.dumps(scene.props),
                    scene.updated_at.isoformat(),
                    scene.id,
                ),
            )
            if cursor.rowcount == 0:
                return False
            self._insert_iteration(iteration, started)
        return True

    def delete_scene(
        self, scene_id: str, iteration: SceneIteration, started: float | None = None,
    ) -> bool:
        """Remove the scene row. Returns False if it was already gone."""
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM scenes WHERE id = ?", (scene_id,))
            if cursor.rowcount == 0:
                return False
            self._insert_iteration(iteration, started)
        return True

    # ── Iterations ───────────────────────────────────────────────────────────

    def _insert_iteration(self, iteration: SceneIteration, started: float | None) -> None:
        """Insert *iteration*; with *started* set, its time runs up to this write."""
        if started is not None:
            elapsed = int((time.monotonic() - started) * 1000)
            iteration = iteration.model_copy(update={"generation_time_ms": elapsed})
        self._conn.execute(
            f"INSERT INTO scene_iterations ({_ITERATION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _iteration_params(iteration),
        )

    def get_iteration(self, iteration_id: str) -> SceneIteration | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_ITERATION_COLUMNS} FROM scene_iterations WHERE id = ?",
                (iteration_id,),
            ).fetchone()
        return _row_to_iteration(row) if row else None

    def list_iterations(
        self, project_id: str, scene_id: str | None = None, limit: int = 50,
    ) -> list[SceneIteration]:
        """Newest first."""
        sql = f"SELECT {_ITERATION_COLUMNS} FROM scene_iterations WHERE project_id = ?"
        params: list = [project_id]
        if scene_id:
            sql += " AND scene_id = ?"
            params.append(scene_id)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_iteration(r) for r in rows]

    # ── Messages ─────────────────────────────────────────────────────────────

    def append_message(
        self,
        project_id: str,
        role: ChatRole,
        content: str,
        image_urls: list[str],
        message_id: str | None = None,
    ) -> str:
        message_id = message_id or new_id()
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT COALESCE(MAX(seq), 0) FROM messages WHERE project_id = ?",
                (project_id,),
            ).fetchone()
            self._conn.execute(
                "INSERT INTO messages (id, project_id, role, content, image_urls, seq, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    message_id,
                    project_id,
                    role,
                    content,
                    json.dumps(image_urls),
                    row[0] + 1,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
        return message_id

    def recent_messages(self, project_id: str, limit: int) -> list[ChatMessage]:
        """The last *limit* messages, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT role, content, image_urls FROM messages WHERE project_id = ? "
                "ORDER BY seq DESC LIMIT ?",
                (project_id, limit),
            ).fetchall()
        return [
            ChatMessage(role=r[0], content=r[1], image_urls=json.loads(r[2]))
            for r in reversed(rows)
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class SceneStore:
    """Async facade over :class:`SceneDB`.

    sqlite errors surface as :class:`PersistenceError`; nothing is retried.
    """

    def __init__(self, db_path: str) -> None:
        self._db = SceneDB(db_path)

    async def _run(self, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("Storage call %s failed: %s", fn.__name__, exc)
            raise PersistenceError("Saving to the scene database failed") from exc

    async def list_scenes(self, project_id: str) -> list[Scene]:
        return await self._run(self._db.list_scenes, project_id)

    async def get_scene(self, scene_id: str) -> Scene | None:
        return await self._run(self._db.get_scene, scene_id)

    async def count_scenes(self, project_id: str) -> int:
        return await self._run(self._db.count_scenes, project_id)

    async def insert_scene(
        self, scene: Scene, iteration: SceneIteration, started: float | None = None,
    ) -> None:
        await self._run(self._db.insert_scene, scene, iteration, started)
        logger.info(
            "Created scene %s in project %s (order=%d, %d frames)",
            scene.id, scene.project_id, scene.order, scene.duration,
        )

    async def update_scene(
        self, scene: Scene, iteration: SceneIteration, started: float | None = None,
    ) -> bool:
        updated = await self._run(self._db.update_scene, scene, iteration, started)
        if updated:
            logger.info("Updated scene %s (%s, %d frames)", scene.id, iteration.operation_type, scene.duration)
        return updated

    async def delete_scene(
        self, scene_id: str, iteration: SceneIteration, started: float | None = None,
    ) -> bool:
        deleted = await self._run(self._db.delete_scene, scene_id, iteration, started)
        if deleted:
            logger.info("Deleted scene %s", scene_id)
        return deleted

    async def get_iteration(self, iteration_id: str) -> SceneIteration | None:
        return await self._run(self._db.get_iteration, iteration_id)

    async def list_iterations(
        self, project_id: str, scene_id: str | None = None, limit: int = 50,
    ) -> list[SceneIteration]:
        return await self._run(self._db.list_iterations, project_id, scene_id, limit)

    async def append_message(
        self,
        project_id: str,
        role: ChatRole,
        content: str,
        image_urls: list[str] | None = None,
        message_id: str | None = None,
    ) -> str:
        return await self._run(
            self._db.append_message, project_id, role, content, image_urls or [], message_id,
        )

    async def recent_messages(self, project_id: str, limit: int) -> list[ChatMessage]:
        return await self._run(self._db.recent_messages, project_id, limit)

    def close(self) -> None:
        self._db.close()
