import os
import tempfile

# Settings are read at import time, so they must be in place before the app is imported
_db_dir = tempfile.mkdtemp(prefix="fastgram-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["MEDIA_PUBLIC_BASE_URL"] = "https://media.test/fastgram"

import pytest
from httpx import AsyncClient, ASGITransport

from app.utils.exceptions import MediaUploadFailed
from app.utils.media_storage import MediaStorage, get_media_storage
from database import AsyncSessionLocal, create_tables, drop_tables, engine
from main import app


class FakeMediaStorage(MediaStorage):
    """Keeps uploads in memory instead of talking to the bucket."""

    def __init__(self):
        super().__init__(bucket="test-bucket", public_base_url="https://media.test/fastgram")
        self.uploaded = []
        self.deleted = []
        self.fail_uploads = False

    async def upload(self, image_data: bytes, folder: str, public_id: str) -> str:
        if self.fail_uploads:
            raise MediaUploadFailed()
        full_id = f"{folder.strip('/')}/{public_id}"
        self.uploaded.append(full_id)
        return self.public_url(full_id)

    async def delete(self, public_id: str) -> None:
        self.deleted.append(public_id)


@pytest.fixture
async def database():
    await create_tables()
    yield
    await drop_tables()
    await engine.dispose()


@pytest.fixture
async def db_session(database):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def media():
    return FakeMediaStorage()


@pytest.fixture
async def client(database, media):
    app.dependency_overrides[get_media_storage] = lambda: media
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def register(client):
    """Register a user and return (user, tokens, headers)."""

    async def _register(username: str, password: str = "secret123", **extra):
        response = await client.post("/api/auth/register", json={
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
            **extra,
        })
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return data["user"], data["tokens"], auth_headers(data["tokens"])

    return _register


@pytest.fixture
def create_post(client):
    async def _create_post(headers: dict, caption: str = "hello"):
        response = await client.post(
            "/api/posts/",
            files={"image": ("photo.jpg", b"not-really-a-jpeg", "image/jpeg")},
            data={"caption": caption},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["post"]

    return _create_post
