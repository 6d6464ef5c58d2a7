from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .models import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PROCESSING,
    AssetRecord,
    BusinessRecord,
    JobRecord,
)

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _SQLiteStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init(self) -> None:
        raise NotImplementedError


class SQLiteJobStore(_SQLiteStore):
    """Ledger of generation jobs.

    A row is written twice at most: once as ``processing`` by
    :meth:`create_job` and once more by :meth:`complete_job` or
    :meth:`fail_job`. Both terminal writers are guarded on the current
    status, so a second terminal write (or a write to a deleted row) changes
    nothing and returns ``None``.
    """

    def _init(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS generation_jobs (
                  job_id TEXT PRIMARY KEY,
                  business_id TEXT NOT NULL,
                  status TEXT NOT NULL,
                  prompt TEXT NOT NULL,
                  aspect_ratio TEXT NOT NULL,
                  style_id TEXT,
                  subject_id TEXT,
                  model_tier TEXT NOT NULL,
                  result_asset_id TEXT,
                  error_message TEXT,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            # Migration for DBs created before strategies were recorded
            cols = [r["name"] for r in conn.execute("PRAGMA table_info(generation_jobs)").fetchall()]
            if "strategy_json" not in cols:
                conn.execute("ALTER TABLE generation_jobs ADD COLUMN strategy_json TEXT")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_business_status "
                "ON generation_jobs(business_id, status, created_at)"
            )
            conn.commit()

    def create_job(
        self,
        job_id: str,
        business_id: str,
        *,
        prompt: str,
        aspect_ratio: str = "1:1",
        style_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        model_tier: str = "pro",
        strategy: Optional[Any] = None,
    ) -> JobRecord:
        now = _now_iso()
        strategy_json = json.dumps(strategy, ensure_ascii=False) if strategy is not None else None
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO generation_jobs(job_id, business_id, status, prompt, aspect_ratio, style_id,
                  subject_id, model_tier, result_asset_id, error_message, created_at, updated_at, strategy_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    business_id,
                    JOB_PROCESSING,
                    prompt,
                    aspect_ratio,
                    style_id,
                    subject_id,
                    model_tier,
                    None,
                    None,
                    now,
                    now,
                    strategy_json,
                ),
            )
            conn.commit()
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> JobRecord:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM generation_jobs WHERE job_id = ?", (job_id,)).fetchone()
            if row is None:
                raise KeyError(f"Job not found: {job_id}")
            return JobRecord(**dict(row))

    def find_job(self, job_id: str) -> Optional[JobRecord]:
        try:
            return self.get_job(job_id)
        except KeyError:
            return None

    def _finish(self, job_id: str, status: str, column: str, value: str) -> Optional[JobRecord]:
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE generation_jobs SET status = ?, {column} = ?, updated_at = ? "
                "WHERE job_id = ? AND status = ?",
                (status, value, _now_iso(), job_id, JOB_PROCESSING),
            )
            conn.commit()
            changed = cur.rowcount
        if not changed:
            logger.info(f"[ledger] ignored {status} update for job {job_id}: not processing or deleted")
            return None
        return self.get_job(job_id)

    def complete_job(self, job_id: str, asset_id: str) -> Optional[JobRecord]:
        return self._finish(job_id, JOB_COMPLETED, "result_asset_id", asset_id)

    def fail_job(self, job_id: str, error_message: str) -> Optional[JobRecord]:
        return self._finish(job_id, JOB_FAILED, "error_message", error_message or "Unknown error")

    def update_job(
        self,
        job_id: str,
        *,
        status: str,
        result_asset_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[JobRecord]:
        if status == JOB_COMPLETED:
            if not result_asset_id:
                raise ValueError("A completed job needs result_asset_id")
            return self.complete_job(job_id, result_asset_id)
        if status == JOB_FAILED:
            return self.fail_job(job_id, error_message or "Unknown error")
        raise ValueError(f"Jobs can only move from processing to a terminal status, not {status!r}")

    def list_pending(self, business_id: str) -> List[JobRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM generation_jobs WHERE business_id = ? AND status = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (business_id, JOB_PROCESSING),
            ).fetchall()
        return [JobRecord(**dict(r)) for r in rows]

    def delete_job(self, job_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM generation_jobs WHERE job_id = ?", (job_id,))
            conn.commit()
            return cur.rowcount > 0


class SQLiteAssetStore(_SQLiteStore):
    def _init(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS assets (
                  asset_id TEXT PRIMARY KEY,
                  business_id TEXT NOT NULL,
                  type TEXT NOT NULL,
                  content TEXT NOT NULL,
                  prompt TEXT NOT NULL,
                  style_preset TEXT,
                  style_id TEXT,
                  subject_id TEXT,
                  aspect_ratio TEXT NOT NULL,
                  model_tier TEXT NOT NULL,
                  created_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def create_asset(
        self,
        asset_id: str,
        business_id: str,
        *,
        content: str,
        prompt: str,
        aspect_ratio: str,
        model_tier: str,
        style_preset: Optional[str] = None,
        style_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        type: str = "image",
    ) -> AssetRecord:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO assets(asset_id, business_id, type, content, prompt, style_preset, style_id,
                  subject_id, aspect_ratio, model_tier, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    asset_id,
                    business_id,
                    type,
                    content,
                    prompt,
                    style_preset,
                    style_id,
                    subject_id,
                    aspect_ratio,
                    model_tier,
                    _now_iso(),
                ),
            )
            conn.commit()
        return self.get_asset(asset_id)

    def get_asset(self, asset_id: str) -> AssetRecord:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM assets WHERE asset_id = ?", (asset_id,)).fetchone()
            if row is None:
                raise KeyError(f"Asset not found: {asset_id}")
            return AssetRecord(**dict(row))

    def list_assets(self, business_id: str) -> List[AssetRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM assets WHERE business_id = ? ORDER BY created_at DESC, rowid DESC",
                (business_id,),
            ).fetchall()
            return [AssetRecord(**dict(r)) for r in rows]


class SQLiteBusinessStore(_SQLiteStore):
    """Read access to business brand profiles.

    Profiles are managed elsewhere; ``upsert_business`` exists for seeding.
    """

    def _init(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS businesses (
                  business_id TEXT PRIMARY KEY,
                  name TEXT NOT NULL,
                  industry TEXT NOT NULL DEFAULT '',
                  logo_url TEXT,
                  profile_json TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            conn.commit()

    def upsert_business(
        self,
        business_id: str,
        *,
        name: str,
        industry: str = "",
        logo_url: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
    ) -> BusinessRecord:
        profile_json = json.dumps(profile or {}, ensure_ascii=False)
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO businesses(business_id, name, industry, logo_url, profile_json)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(business_id) DO UPDATE SET name=excluded.name, industry=excluded.industry,
                  logo_url=excluded.logo_url, profile_json=excluded.profile_json
                """,
                (business_id, name, industry, logo_url, profile_json),
            )
            conn.commit()
        business = self.get_business(business_id)
        assert business is not None
        return business

    def get_business(self, business_id: str) -> Optional[BusinessRecord]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM businesses WHERE business_id = ?", (business_id,)).fetchone()
            if row is None:
                return None
            return BusinessRecord(**dict(row))
