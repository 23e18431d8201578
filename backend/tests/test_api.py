import html
import re
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import ASGITransport, AsyncClient

from sitebuilder.config import Settings
from sitebuilder.database import get_db
from sitebuilder.main import app
from sitebuilder.services.container import build_services

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}

DOCUMENT = (
    "<!DOCTYPE html><html><head><title>Acme</title></head>"
    "<body><!-- include: landing/sections/hero.html --></body></html>"
)


@pytest.fixture
async def client(session_factory, toolchain, tmp_path):
    settings = Settings(render_tmp_dir=tmp_path / "render")
    app.state.services = build_services(settings, session_factory, toolchain=toolchain)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _save(client, destination, content, headers=ALICE, project_id="p1"):
    return await client.post(
        f"/api/projects/{project_id}/files",
        json={"destination": destination, "content": content},
        headers=headers,
    )


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_save_file_and_read_latest(client):
    response = await _save(client, "landing/sections/hero.html", "<div><p>hello")

    assert response.status_code == 201
    body = response.json()
    assert body["revision_number"] == 1
    assert body["path"] == "landing/sections/hero.html"
    assert body["role"] == "section"
    assert body["content"] == "<div><p>hello</p></div>"
    assert body["fixes_applied"] == ["Closed 2 unclosed tag(s)"]

    latest = await client.get("/api/preview/p1/latest", headers=ALICE)
    assert latest.status_code == 200
    assert latest.json()["revision_number"] == 1


async def test_rejections_carry_reason_and_code(client):
    invalid = await _save(client, "../escape.html", "<p>x</p>")
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "INVALID_DESTINATION"
    assert invalid.json()["error"]

    nested = await _save(client, "landing/sections/Hero.html", "<html><body><div>hi</div></body></html>")
    assert nested.status_code == 422
    assert nested.json()["code"] == "NESTED_DOCUMENT_IN_FRAGMENT"

    broken = await _save(client, "landing/index.html", "<div>no document</div>")
    assert broken.status_code == 422
    assert broken.json()["code"] == "MARKUP_INVALID"
    assert "Missing <head> tag" in broken.json()["details"]


async def test_rate_limited_response(client):
    for i in range(10):
        response = await _save(client, f"landing/sections/s{i}.html", f"<p>{i}</p>")
        assert response.status_code == 201

    limited = await _save(client, "landing/sections/s10.html", "<p>10</p>")

    assert limited.status_code == 429
    assert limited.json()["code"] == "RATE_LIMITED"
    assert int(limited.headers["Retry-After"]) >= 1


async def test_identity_and_ownership(client):
    await _save(client, "landing/index.html", DOCUMENT)

    anonymous = await client.get("/api/preview/p1/latest")
    assert anonymous.status_code == 401

    foreign_read = await client.get("/api/preview/p1/0", headers=BOB)
    assert foreign_read.status_code == 403
    assert foreign_read.json()["code"] == "FORBIDDEN"

    foreign_write = await _save(client, "landing/sections/x.html", "<p>x</p>", headers=BOB)
    assert foreign_write.status_code == 403

    unknown = await client.get("/api/preview/nope/0", headers=ALICE)
    assert unknown.status_code == 404


async def test_preview_composes_html_site(client):
    await _save(client, "landing/index.html", DOCUMENT)
    await _save(client, "landing/sections/hero.html", "<section><h1>Rockets</h1></section>")

    latest = await client.get("/api/preview/p1/0", headers=ALICE)
    pinned = await client.get("/api/preview/p1/1", headers=ALICE)

    assert latest.status_code == 200
    assert latest.headers["content-type"].startswith("text/html")
    assert latest.headers["X-Revision-Number"] == "2"
    assert "<section><h1>Rockets</h1></section>" in latest.text
    assert "Missing include" in pinned.text
    assert pinned.headers["X-Compose-Warnings"] == "1"


async def test_preview_component_site(client):
    await _save(client, "landing/sections/Hero.tsx", "export default function Hero() { return <h1>Jets</h1>; }")
    await _save(
        client,
        "landing/index.tsx",
        'import Hero from "./sections/Hero";\nexport default function App() { return <main><Hero /></main>; }',
    )

    document = await client.get("/api/preview/p1/2", headers=ALICE)
    bundle = await client.get("/api/preview/p1/2/bundle", headers=ALICE)
    shell = await client.get("/api/preview/p1/0/app", headers=ALICE)

    assert document.status_code == 200
    assert "<h1>Jets</h1>" in document.text
    assert bundle.status_code == 200
    assert bundle.headers["content-type"].startswith("application/javascript")
    assert "landing/sections/Hero.tsx" in bundle.text
    assert shell.status_code == 200
    assert 'src="/api/preview/p1/2/bundle?token=' in shell.text


async def test_bundle_for_html_site_is_not_found(client):
    await _save(client, "landing/index.html", DOCUMENT)

    response = await client.get("/api/preview/p1/1/bundle", headers=ALICE)

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_code_browser(client):
    await _save(client, "landing/index.html", DOCUMENT)
    await _save(client, "landing/sections/hero.html", "<section>v1</section>")
    await _save(client, "landing/sections/hero.html", "<section>v2</section>")

    listing = await client.get("/api/preview/p1/code", params={"revision": 2}, headers=ALICE)
    assert listing.status_code == 200
    assert [f["path"] for f in listing.json()["files"]] == ["landing/index.html", "landing/sections/hero.html"]

    old = await client.get(
        "/api/preview/p1/code-file",
        params={"path": "landing/sections/hero.html", "revision": 2},
        headers=ALICE,
    )
    new = await client.get("/api/preview/p1/code-file", params={"path": "landing/sections/hero.html"}, headers=ALICE)
    assert old.json()["content"] == "<section>v1</section>"
    assert new.json()["content"] == "<section>v2</section>"

    missing = await client.get("/api/preview/p1/code-file", params={"path": "../x.html"}, headers=ALICE)
    assert missing.status_code == 404


async def test_publish_and_republish(client):
    await _save(client, "landing/index.html", DOCUMENT)
    await _save(client, "landing/sections/hero.html", "<section>first</section>")

    published = await client.post("/api/publish", json={"project_id": "p1"}, headers=ALICE)
    assert published.status_code == 200
    public_id = published.json()["public_id"]
    assert published.json()["revision_number"] == 2

    public = await client.get(f"/api/published/{public_id}")
    assert public.status_code == 200
    assert "<section>first</section>" in public.text

    await _save(client, "landing/sections/hero.html", "<section>second</section>")
    still_pinned = await client.get(f"/api/published/{public_id}")
    assert "<section>first</section>" in still_pinned.text

    republished = await client.post("/api/publish", json={"project_id": "p1"}, headers=ALICE)
    assert republished.json()["public_id"] == public_id
    assert republished.json()["revision_number"] == 3
    assert "<section>second</section>" in (await client.get(f"/api/published/{public_id}")).text

    status = await client.get("/api/publish", params={"project_id": "p1"}, headers=ALICE)
    assert status.json()["revision_number"] == 3


async def test_publish_errors(client):
    nothing = await client.post("/api/publish", json={"project_id": "p1"}, headers=ALICE)
    assert nothing.status_code == 404

    unknown = await client.get("/api/published/does-not-exist")
    assert unknown.status_code == 404

    unpublished = await client.get("/api/publish", params={"project_id": "p1"}, headers=ALICE)
    assert unpublished.status_code == 404


async def test_generation_context_endpoint(client):
    await _save(client, "landing/index.html", DOCUMENT)
    await _save(client, "landing/sections/hero.html", "<section>hero</section>")

    response = await client.get(
        "/api/projects/p1/context",
        params={"path": "landing/sections/hero.html", "is_modification": "true"},
        headers=ALICE,
    )

    assert response.status_code == 200
    assert [f["content"] for f in response.json()["files"]] == ["<section>hero</section>"]


async def test_retry_without_pending_save(client):
    response = await client.post("/api/projects/p1/files/retry", headers=ALICE)

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_failed_component_build_is_unavailable(client, toolchain):
    await _save(client, "landing/index.tsx", "export default function App() { return <main>hi</main>; }")
    toolchain.fail_build = True

    document = await client.get("/api/preview/p1/1", headers=ALICE)
    bundle = await client.get("/api/preview/p1/1/bundle", headers=ALICE)

    assert document.status_code == 503
    assert document.json()["code"] == "COMPOSE_UNAVAILABLE"
    assert bundle.status_code == 503


def _script_src(shell_html: str) -> str:
    return re.search(r'<script type="module" src="([^"]+)"', shell_html).group(1)


async def test_app_shell_bundle_loads_without_identity_header(client):
    await _save(client, "landing/sections/Hero.tsx", "export default function Hero() { return <h1>Jets</h1>; }")
    await _save(
        client,
        "landing/index.tsx",
        'import Hero from "./sections/Hero";\nexport default function App() { return <main><Hero /></main>; }',
    )

    shell = await client.get("/api/preview/p1/0/app", headers=ALICE)
    src = html.unescape(_script_src(shell.text))
    bundle = await client.get(src)

    assert bundle.status_code == 200
    assert bundle.headers["content-type"].startswith("application/javascript")
    assert "landing/sections/Hero.tsx" in bundle.text


async def test_bundle_token_is_bound_to_its_revision(client):
    await _save(client, "landing/index.tsx", "export default function App() { return <main>v1</main>; }")
    await _save(client, "landing/index.tsx", "export default function App() { return <main>v2</main>; }")

    shell = await client.get("/api/preview/p1/2/app", headers=ALICE)
    token = parse_qs(urlsplit(html.unescape(_script_src(shell.text))).query)["token"][0]

    other_revision = await client.get("/api/preview/p1/1/bundle", params={"token": token})
    forged = token[:-1] + ("1" if token.endswith("0") else "0")
    tampered = await client.get("/api/preview/p1/2/bundle", params={"token": forged})
    anonymous = await client.get("/api/preview/p1/2/bundle")

    assert other_revision.status_code == 401
    assert tampered.status_code == 401
    assert anonymous.status_code == 401


async def test_identity_header_takes_precedence_over_token(client):
    await _save(client, "landing/index.tsx", "export default function App() { return <main>mine</main>; }")
    shell = await client.get("/api/preview/p1/1/app", headers=ALICE)
    src = html.unescape(_script_src(shell.text))
    await _save(client, "landing/sections/x.html", "<p>x</p>", headers=ALICE)

    assert (await client.get(src)).status_code == 200
    assert (await client.get(src, headers=BOB)).status_code == 403


async def test_revisions_beyond_latest_are_not_found(client):
    await _save(client, "landing/index.html", DOCUMENT)
    await _save(client, "landing/sections/hero.html", "<section>second</section>")

    publish = await client.post("/api/publish", json={"project_id": "p1", "revision_number": 1000}, headers=ALICE)
    preview = await client.get("/api/preview/p1/3", headers=ALICE)
    code = await client.get("/api/preview/p1/code", params={"revision": 3}, headers=ALICE)
    shell = await client.get("/api/preview/p1/3/app", headers=ALICE)

    assert publish.status_code == 404
    assert publish.json()["code"] == "NOT_FOUND"
    assert preview.status_code == 404
    assert code.status_code == 404
    assert shell.status_code == 404

    status = await client.get("/api/publish", params={"project_id": "p1"}, headers=ALICE)
    assert status.status_code == 404


async def test_preview_selects_composer_once(client, monkeypatch):
    await _save(client, "landing/index.html", DOCUMENT)
    composer = app.state.services.composer
    original = composer.select
    calls = []

    async def counting_select(project_id, revision_number):
        calls.append(revision_number)
        return await original(project_id, revision_number)

    monkeypatch.setattr(composer, "select", counting_select)
    response = await client.get("/api/preview/p1/1", headers=ALICE)

    assert response.status_code == 200
    assert calls == [1]
