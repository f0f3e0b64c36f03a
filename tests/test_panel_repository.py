from types import SimpleNamespace
from uuid import uuid4

from sqlalchemy.dialects import postgresql

from panelhub.database.panel_repository import SqlPanelRepository
from tests.conftest import run


class RecordingSession:
    """Stands in for AsyncSession; every execute() finds no row"""

    def __init__(self):
        self.statements = []
        self.committed = False
        self.rolled_back = False

    async def execute(self, stmt, params=None):
        self.statements.append(stmt)
        return SimpleNamespace(scalar_one_or_none=lambda: None)

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True

    async def flush(self):
        pass

    def add(self, obj):
        raise AssertionError(f"Nothing should be written when the guard misses: {obj!r}")


def compile_pg(stmt):
    compiled = stmt.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


def where_params(sql, params, column):
    """Bound values compared against `column` in the WHERE clause"""
    where = sql.split("WHERE", 1)[1]
    return [value for name, value in params.items() if name.startswith(f"{column}_") and f"%({name})s" in where]


class TestPrizeAwardGuard:

    def test_update_is_conditional_on_prize_not_awarded(self):
        session = RecordingSession()
        repo = SqlPanelRepository(session)

        entry = run(repo.award_prize(uuid4(), uuid4(), 500, "admin-1", "Contest prize"))

        assert entry is None
        assert session.rolled_back
        assert len(session.statements) == 1
        sql, params = compile_pg(session.statements[0])
        assert sql.startswith("UPDATE contest_participants SET")
        assert "RETURNING contest_participants.id" in sql
        where = sql.split("WHERE", 1)[1]
        assert "contest_participants.prize_awarded" in where
        assert "contest_participants.prize_awarded = false" in where or where_params(sql, params, "prize_awarded") == [False]
        assert "contest_participants.contest_id" in where
        assert "contest_participants.panelist_id" in where


class TestDebitGuard:

    def test_debit_requires_covering_balance(self):
        session = RecordingSession()
        repo = SqlPanelRepository(session)

        entry = run(repo.debit_points(uuid4(), 300, "redemption", "Coffee voucher"))

        assert entry is None
        assert len(session.statements) == 1
        sql, params = compile_pg(session.statements[0])
        assert sql.startswith("UPDATE panelist_profiles SET")
        assert "RETURNING panelist_profiles.id" in sql
        where = sql.split("WHERE", 1)[1]
        assert "panelist_profiles.points_balance >= " in where
        assert where_params(sql, params, "points_balance") == [300]

    def test_balance_arithmetic_runs_in_the_database(self):
        session = RecordingSession()
        run(SqlPanelRepository(session).debit_points(uuid4(), 300, "redemption", "Coffee voucher"))

        sql, _ = compile_pg(session.statements[0])
        set_clause = sql.split("SET", 1)[1].split("WHERE", 1)[0]
        assert "points_balance=(panelist_profiles.points_balance - " in set_clause
        assert "total_points_redeemed=(panelist_profiles.total_points_redeemed + " in set_clause
