"""Tests for the versioned progress stores."""

import asyncio
import json

from models import Badge, Progress
from progress_store import InMemoryProgressStore, PostgresProgressStore
from results import ErrorKind


class TestInMemoryStore:
    def test_missing_user_loads_none(self):
        result = asyncio.run(InMemoryProgressStore().load("nobody"))
        assert result.ok and result.value is None

    def test_first_save_creates_version_one(self):
        async def run():
            store = InMemoryProgressStore()
            saved = await store.save("u1", Progress(user_id="u1", xp=10), 0)
            loaded = await store.load("u1")
            return saved, loaded

        saved, loaded = asyncio.run(run())
        assert saved.ok and saved.value == 1
        assert loaded.value.xp == 10
        assert loaded.value.version == 1

    def test_stale_version_conflicts(self):
        async def run():
            store = InMemoryProgressStore()
            await store.save("u1", Progress(user_id="u1", xp=10), 0)
            second = await store.save("u1", Progress(user_id="u1", xp=20), 1)
            stale = await store.save("u1", Progress(user_id="u1", xp=99), 1)
            recreate = await store.save("u1", Progress(user_id="u1"), 0)
            return second, stale, recreate, (await store.load("u1")).value

        second, stale, recreate, current = asyncio.run(run())
        assert second.ok and second.value == 2
        assert stale.kind is ErrorKind.CONFLICT
        assert recreate.kind is ErrorKind.CONFLICT
        assert current.xp == 20 and current.version == 2


class FakeDatabase:
    """Just enough of Database for the student_progress queries."""

    def __init__(self, fail: bool = False):
        self.rows = {}
        self.fail = fail

    async def fetch_one(self, query, user_id):
        if self.fail:
            raise OSError("connection refused")
        row = self.rows.get(user_id)
        if row is None:
            return None
        # JSONB comes back as text from asyncpg
        return {k: json.dumps(v) if isinstance(v, list) else v for k, v in row.items()}

    async def execute_returning(self, query, *args):
        if self.fail:
            raise OSError("connection refused")
        user_id = args[0]
        values = {
            "user_id": user_id, "xp": args[1], "level": args[2], "streak": args[3],
            "last_activity_date": args[4], "completed_quizzes": args[5], "total_quiz_score": args[6],
            "badges": json.loads(args[7]), "quiz_results": json.loads(args[8]),
            "studied_flashcard_sets": json.loads(args[9]),
        }
        current = self.rows.get(user_id)
        if query.lstrip().startswith("INSERT"):
            if current is not None:
                return None
            self.rows[user_id] = {**values, "version": 1}
            return {"version": 1}
        expected = args[10]
        if current is None or current["version"] != expected:
            return None
        self.rows[user_id] = {**values, "version": expected + 1}
        return {"version": expected + 1}


class TestPostgresStore:
    def test_save_and_load_round_trip(self):
        async def run():
            store = PostgresProgressStore(FakeDatabase())
            progress = Progress(user_id="u1", xp=120, level=2, badges=(Badge(id="xp_100", unlocked_at=3),),
                                studied_flashcard_sets=("s1",))
            first = await store.save("u1", progress, 0)
            loaded = await store.load("u1")
            return first, loaded

        first, loaded = asyncio.run(run())
        assert first.ok and first.value == 1
        assert loaded.value.xp == 120
        assert loaded.value.badges[0].id == "xp_100"
        assert loaded.value.studied_flashcard_sets == ("s1",)
        assert loaded.value.version == 1

    def test_version_mismatch_is_conflict(self):
        async def run():
            store = PostgresProgressStore(FakeDatabase())
            await store.save("u1", Progress(user_id="u1"), 0)
            duplicate_insert = await store.save("u1", Progress(user_id="u1"), 0)
            stale_update = await store.save("u1", Progress(user_id="u1"), 7)
            good_update = await store.save("u1", Progress(user_id="u1", xp=5), 1)
            return duplicate_insert, stale_update, good_update

        duplicate_insert, stale_update, good_update = asyncio.run(run())
        assert duplicate_insert.kind is ErrorKind.CONFLICT
        assert stale_update.kind is ErrorKind.CONFLICT
        assert good_update.ok and good_update.value == 2

    def test_io_failure_is_transient(self):
        store = PostgresProgressStore(FakeDatabase(fail=True))
        loaded = asyncio.run(store.load("u1"))
        saved = asyncio.run(store.save("u1", Progress(user_id="u1"), 0))
        assert loaded.kind is ErrorKind.TRANSIENT
        assert saved.kind is ErrorKind.TRANSIENT
