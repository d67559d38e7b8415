from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.models.token import RefreshToken
from app.models.user import User
from app.services.token_sweeper import TokenSweeper
from database import AsyncSessionLocal, transaction


async def _seed_tokens(db):
    now = datetime.now(timezone.utc)
    async with transaction(db):
        user = User(username="alice", email="alice@example.com", password_hash="x")
        db.add(user)
        await db.flush()
        db.add_all([
            RefreshToken(user_id=user.id, token="expired-1", expires_at=now - timedelta(days=1)),
            RefreshToken(user_id=user.id, token="expired-2", expires_at=now - timedelta(minutes=1)),
            RefreshToken(user_id=user.id, token="live", expires_at=now + timedelta(days=7)),
        ])


async def test_run_once_removes_only_expired_tokens(db_session):
    await _seed_tokens(db_session)
    sweeper = TokenSweeper(AsyncSessionLocal, interval_seconds=3600)

    removed = await sweeper.run_once()

    assert removed == 2
    remaining = (await db_session.scalars(select(RefreshToken.token))).all()
    assert remaining == ["live"]

    assert await sweeper.run_once() == 0


async def test_run_once_swallows_errors():
    def broken_factory():
        raise RuntimeError("database unavailable")

    sweeper = TokenSweeper(broken_factory)
    assert await sweeper.run_once() == 0


async def test_start_and_stop(database):
    sweeper = TokenSweeper(AsyncSessionLocal, interval_seconds=3600)
    assert not sweeper.running

    sweeper.start()
    assert sweeper.running

    await sweeper.stop()
    assert not sweeper.running

    # Stopping twice is harmless
    await sweeper.stop()
