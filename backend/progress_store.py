"""
Student Progress Engine - Progress Store
Versioned persistence for progress records (optimistic concurrency)

Contract:
    load(user_id) -> Ok(Progress) | Ok(None) when absent | Err(TRANSIENT)
    save(user_id, progress, expected_version) -> Ok(new_version) | Err(CONFLICT) | Err(TRANSIENT)

expected_version 0 means "no record yet"; the first save creates version 1.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional

import asyncpg

from database import Database, db, fetch_progress_row, insert_progress_row, update_progress_row
from logger import get_logger
from models import Progress
from results import Err, ErrorKind, Ok, Result

log = get_logger("store")


class ProgressStore(ABC):
    """Persistence boundary consumed by the progress service."""

    name = "abstract"

    @abstractmethod
    async def load(self, user_id: str) -> Result[Optional[Progress]]:
        ...

    @abstractmethod
    async def save(self, user_id: str, progress: Progress, expected_version: int) -> Result[int]:
        ...


# ============================================
# IN-MEMORY STORE
# ============================================

class InMemoryProgressStore(ProgressStore):
    """Process-local store with compare-and-set saves.

    Progress values are frozen, so handing out the stored instance is safe.
    """

    name = "memory"

    def __init__(self):
        self._records: Dict[str, Progress] = {}
        self._lock = asyncio.Lock()

    async def load(self, user_id: str) -> Result[Optional[Progress]]:
        return Ok(self._records.get(user_id))

    async def save(self, user_id: str, progress: Progress, expected_version: int) -> Result[int]:
        async with self._lock:
            current = self._records.get(user_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                return Err(
                    ErrorKind.CONFLICT,
                    f"user={user_id} expected version {expected_version}, found {current_version}"
                )

            new_version = current_version + 1
            self._records[user_id] = progress.model_copy(update={"version": new_version})
            return Ok(new_version)


# ============================================
# POSTGRES STORE
# ============================================

class PostgresProgressStore(ProgressStore):
    """asyncpg-backed store over the student_progress table."""

    name = "postgres"

    def __init__(self, database: Database = db):
        self.database = database

    async def load(self, user_id: str) -> Result[Optional[Progress]]:
        try:
            row = await fetch_progress_row(user_id, self.database)
        except (asyncpg.PostgresError, OSError) as e:
            log.error(f"Progress load failed for user={user_id}: {e}")
            return Err(ErrorKind.TRANSIENT, f"load failed: {e}")

        if row is None:
            return Ok(None)
        return Ok(Progress.model_validate(row))

    async def save(self, user_id: str, progress: Progress, expected_version: int) -> Result[int]:
        values = progress.model_dump(mode="json")
        values["user_id"] = user_id

        try:
            if expected_version == 0:
                row = await insert_progress_row(values, self.database)
            else:
                row = await update_progress_row(values, expected_version, self.database)
        except (asyncpg.PostgresError, OSError) as e:
            log.error(f"Progress save failed for user={user_id}: {e}")
            return Err(ErrorKind.TRANSIENT, f"save failed: {e}")

        if row is None:
            return Err(ErrorKind.CONFLICT, f"user={user_id} version {expected_version} is stale")
        return Ok(row["version"])
