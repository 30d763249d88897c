from __future__ import annotations

import os
import socket
import tempfile
from typing import Any, Callable

import pytest

# Settings are read on first import; keep tests off the developer's data dir and keys.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="content-studio-tests-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["BOOTSTRAP_ADMIN_EMAIL"] = ""

from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from content_studio.admin import hash_password  # noqa: E402
from content_studio.errors import FetchError, ProviderError  # noqa: E402
from content_studio.providers.base import GeneratedImage, ReferenceImage  # noqa: E402
from content_studio.storage import AssetStore, UserRecord, UserStore  # noqa: E402
from content_studio.web import Page  # noqa: E402
from content_studio.workflows.engine import StepServices  # noqa: E402


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError(
        "Network access is disabled during tests. Mark the test with @pytest.mark.network or set ALLOW_NETWORK=1."
    )


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch, request: pytest.FixtureRequest) -> None:
    """Prevent accidental outbound network calls in unit tests."""

    if os.getenv("ALLOW_NETWORK") == "1":
        return

    if request.node.get_closest_marker("network"):
        return

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


class FakeTextProvider:
    """Replays canned responses in order; a callable response is called with the prompt."""

    name = "fake"
    model = "fake-text"

    def __init__(self, responses: list[str | Callable[[str], str]] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[str, str]] = []

    def queue(self, *responses: str | Callable[[str], str]) -> None:
        self.responses.extend(responses)

    def _next(self, method: str, prompt: str) -> str:
        self.calls.append((method, prompt))
        if not self.responses:
            raise ProviderError("FakeTextProvider ran out of responses")
        response = self.responses.pop(0)
        return response(prompt) if callable(response) else response

    async def generate_text(self, prompt: str, temperature: float = 0.7) -> str:
        return self._next("generate_text", prompt)

    async def analyze_video(self, prompt: str, video_url: str, temperature: float = 0.7) -> str:
        return self._next("analyze_video", prompt)

    async def analyze_images(self, prompt: str, images: list[ReferenceImage]) -> str:
        return self._next("analyze_images", prompt)


class FakeImageProvider:
    name = "fake"
    model = "fake-image"

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_with_references = False
        self.fail_variations: set[int] = set()

    async def generate(
        self,
        prompt: str,
        reference_images: list[ReferenceImage],
        n: int,
        aspect_ratio: str,
    ) -> list[GeneratedImage]:
        self.calls.append({"prompt": prompt, "refs": len(reference_images), "n": n, "aspect_ratio": aspect_ratio})
        if reference_images and self.fail_with_references:
            raise ProviderError("reference images rejected")
        for variant in self.fail_variations:
            if f"[VARIATION {variant}]" in prompt:
                raise ProviderError(f"variation {variant} failed")
        img = Image.new("RGB", (160, 90), (200, 40, 40))
        return [GeneratedImage(image=img, prompt_used=prompt, provider=self.name, model=self.model, raw_metadata={})]


def png_bytes(size: tuple[int, int] = (64, 36)) -> bytes:
    from content_studio.assembly.render import encode_image

    return encode_image(Image.new("RGB", size, (10, 120, 200)), "png")


@pytest.fixture
def fake_text() -> FakeTextProvider:
    return FakeTextProvider()


@pytest.fixture
def fake_image() -> FakeImageProvider:
    return FakeImageProvider()


@pytest.fixture
def pages() -> dict[str, Page]:
    """URL -> Page served by the fake page fetcher. Unknown URLs raise FetchError."""
    return {}


@pytest.fixture
def media() -> dict[str, list[str]]:
    """Site URL -> style image URLs served by the fake image finder."""
    return {}


@pytest.fixture
def services(tmp_path, fake_text, fake_image, pages, media) -> StepServices:
    async def fetch_page(url: str) -> Page:
        if url not in pages:
            raise FetchError(f"HTTP 404 Not Found (URL: {url})", details={"url": url})
        return pages[url]

    async def fetch_image(url: str) -> ReferenceImage:
        if "broken" in url:
            raise FetchError(f"Could not fetch image {url}", details={"url": url})
        if "large" in url:
            return ReferenceImage(data=png_bytes((320, 180)), mime_type="image/png")
        return ReferenceImage(data=png_bytes(), mime_type="image/png")

    async def find_images(url: str) -> list[str]:
        if url not in media:
            raise FetchError(f"HTTP 404 Not Found (URL: {url})", details={"url": url})
        return media[url]

    return StepServices(
        text=fake_text,
        image=fake_image,
        assets=AssetStore(tmp_path),
        fetch_page=fetch_page,
        fetch_image=fetch_image,
        find_images=find_images,
    )


@pytest.fixture
def users(tmp_path) -> UserStore:
    return UserStore(tmp_path)


def make_user(
    users: UserStore,
    email: str,
    role: str = "student",
    password: str = "pw-123456",
    studio_enabled: bool = True,
    studio_expires_at: str | None = None,
) -> UserRecord:
    return users.create_user(
        email=email,
        password_hash=hash_password(password),
        display_name=email.split("@")[0],
        role=role,
        studio_enabled=studio_enabled,
        studio_expires_at=studio_expires_at,
    )


@pytest.fixture
def app(tmp_path, services):
    from content_studio.api.app import create_app
    from content_studio.api.auth import get_services

    application = create_app(tmp_path)
    application.dependency_overrides[get_services] = lambda: services
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login(client) -> Callable[..., dict[str, str]]:
    """Create a user in the app's store and return bearer headers for it."""

    def _login(email: str, role: str = "student", **kwargs: Any) -> dict[str, str]:
        make_user(client.app.state.users, email, role=role, **kwargs)
        res = client.post("/auth/login", json={"email": email, "password": kwargs.get("password", "pw-123456")})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['access_token']}"}

    return _login
