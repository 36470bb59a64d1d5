import re
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from nitroshare.core.config import Settings
from nitroshare.core.identity import IdentityVerifier
from nitroshare.main import create_app
from tests.fixtures.app import (
    MULTIPART_CONTENT_TYPE,
    TEST_TOKENS,
    FakeStrategy,
    auth_headers,
    body_stream,
    multipart_body,
    split_body,
)

STAMP_NAME = re.compile(r"^\d{4}_\d{2}_\d{2}T\d{2}_\d{2}_\d{2}_\d{6}Z\.mp4$")


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _video(data: bytes = b"\x00\x00\x00\x18ftypmp42", name="clip.mp4", content_type="video/mp4"):
    return {"video": (name, data, content_type)}


# ─────────────────────────────────────────────────────────────
# 🔐 Authentication / authorization
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_upload_requires_bearer_token(async_client):
    r = await async_client.post("/nitroshare/api/upload", files=_video())
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"
    body = r.json()
    assert body["error"] is True
    assert body["request_id"] == r.headers["x-request-id"]


@pytest.mark.anyio
async def test_unknown_token_is_rejected(async_client):
    r = await async_client.get("/nitroshare/api/videos", headers=auth_headers("forged"))
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired token"


@pytest.mark.anyio
async def test_verified_but_not_allow_listed_is_forbidden(async_client, upload_root):
    r = await async_client.post("/nitroshare/api/upload", files=_video(), headers=auth_headers("mallory-token"))
    assert r.status_code == 403
    assert r.json()["userEmail"] == "mallory@evil.test"
    assert not (upload_root / "mallory_evil_test").exists()


@pytest.mark.anyio
async def test_empty_allow_list_is_server_misconfiguration(tmp_path):
    cfg = Settings(_env_file=None, UPLOAD_ROOT=tmp_path, ALLOWED_EMAILS="", SWEEPER_ENABLED=False)
    app = create_app(cfg, identity_verifier=IdentityVerifier([FakeStrategy(TEST_TOKENS)]))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        r = await c.get("/nitroshare/api/videos", headers=auth_headers())

    assert r.status_code == 500
    assert "no allowed emails" in r.json()["message"]


@pytest.mark.anyio
async def test_allow_list_match_ignores_case(async_client):
    r = await async_client.get("/nitroshare/api/videos", headers=auth_headers("bob-token"))
    assert r.status_code == 200
    assert r.json() == []


# ─────────────────────────────────────────────────────────────
# ⬆️ Upload → share scenario
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_upload_then_share_page_and_raw_stream(async_client):
    data = b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 500

    r = await async_client.post("/nitroshare/api/upload", files=_video(data), headers=auth_headers())

    assert r.status_code == 200
    assert r.headers["cache-control"] == "no-store"
    body = r.json()
    assert body["message"] == "Video uploaded successfully"
    assert body["size"] == len(data)
    assert STAMP_NAME.match(body["filename"])
    assert body["shareUrl"] == f"http://test/nitroshare/share/alice_example_com/{body['filename']}"
    assert body["videoUrl"] == f"http://test/nitroshare/uploads/alice_example_com/{body['filename']}"
    _ts(body["uploadTime"])

    page = await async_client.get(body["shareUrl"])
    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert f'<meta property="og:video" content="{body["videoUrl"]}"' in page.text
    assert "x-frame-options" not in page.headers

    raw = await async_client.get(body["videoUrl"])
    assert raw.status_code == 200
    assert raw.headers["content-type"] == "video/mp4"
    assert raw.content == data


@pytest.mark.anyio
async def test_raw_stream_supports_range_requests(async_client):
    up = await async_client.post("/nitroshare/api/upload", files=_video(b"0123456789"), headers=auth_headers())
    r = await async_client.get(up.json()["videoUrl"], headers={"Range": "bytes=2-5"})
    assert r.status_code == 206
    assert r.content == b"2345"


@pytest.mark.anyio
async def test_content_type_only_upload_gets_video_extension(async_client):
    r = await async_client.post(
        "/nitroshare/api/upload",
        files=_video(b"moov", name="recording", content_type="video/quicktime"),
        headers=auth_headers(),
    )
    assert r.status_code == 200
    assert r.json()["filename"].endswith(".mov")


@pytest.mark.anyio
async def test_invalid_type_is_rejected_and_nothing_stored(async_client, upload_root):
    r = await async_client.post(
        "/nitroshare/api/upload",
        files=_video(b"hello", name="notes.txt", content_type="text/plain"),
        headers=auth_headers(),
    )
    assert r.status_code == 400
    body = r.json()
    assert body["details"] == {"content_type": "text/plain", "extension": ".txt"}
    assert not (upload_root / "alice_example_com").exists()


@pytest.mark.anyio
async def test_missing_video_field_is_bad_request(async_client):
    r = await async_client.post(
        "/nitroshare/api/upload",
        files={"other": ("clip.mp4", b"x", "video/mp4")},
        headers=auth_headers(),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "No video file uploaded"


@pytest.mark.anyio
async def test_oversize_upload_is_413_and_leaves_no_file(async_client, settings, upload_root):
    r = await async_client.post(
        "/nitroshare/api/upload",
        files=_video(b"a" * (settings.MAX_UPLOAD_BYTES + 1)),
        headers=auth_headers(),
    )
    assert r.status_code == 413
    part = upload_root / "alice_example_com"
    assert not part.exists() or list(part.iterdir()) == []


@pytest.mark.anyio
async def test_declared_length_far_over_ceiling_is_rejected(async_client, settings, upload_root):
    r = await async_client.post(
        "/nitroshare/api/upload",
        files=_video(b"a" * (settings.MAX_UPLOAD_BYTES * 3)),
        headers=auth_headers(),
    )
    assert r.status_code == 413
    assert not (upload_root / "alice_example_com").exists()


def _streamed_upload(client, chunks, token="alice-token", **kw):
    """POST a body that arrives in pieces, chunked (no Content-Length)."""
    return client.post(
        "/nitroshare/api/upload",
        content=body_stream(chunks, **kw),
        headers={**auth_headers(token), "Content-Type": MULTIPART_CONTENT_TYPE},
    )


@pytest.mark.anyio
async def test_chunked_body_without_content_length_is_stored(async_client, upload_root):
    data = b"\x00\x00\x00\x18ftypmp42" + b"\x02" * 20_000

    r = await _streamed_upload(async_client, split_body(multipart_body(data), 9))

    assert r.status_code == 200
    assert r.json()["size"] == len(data)
    assert (upload_root / "alice_example_com" / r.json()["filename"]).read_bytes() == data


@pytest.mark.anyio
async def test_slow_body_times_out_while_arriving(tmp_path):
    cfg = Settings(
        _env_file=None,
        UPLOAD_ROOT=tmp_path,
        ALLOWED_EMAILS="alice@example.com",
        SWEEPER_ENABLED=False,
        UPLOAD_TIMEOUT_SECONDS=0.5,
    )
    app = create_app(cfg, identity_verifier=IdentityVerifier([FakeStrategy(TEST_TOKENS)]))
    chunks = split_body(multipart_body(b"\x00" * 4096), 5)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        r = await _streamed_upload(c, chunks, delay=0.4)

    assert r.status_code == 408
    assert r.json()["message"] == "Upload timed out"
    part = tmp_path / "alice_example_com"
    assert not part.exists() or list(part.iterdir()) == []


@pytest.mark.anyio
async def test_oversize_chunked_body_is_cut_off_at_the_ceiling(async_client, settings, upload_root):
    sent = {}
    chunks = split_body(multipart_body(b"a" * (settings.MAX_UPLOAD_BYTES * 10)), 160)

    r = await _streamed_upload(async_client, chunks, sent=sent)

    assert r.status_code == 413
    assert sent["bytes"] <= settings.MAX_UPLOAD_BYTES + 2 * len(chunks[0])
    part = upload_root / "alice_example_com"
    assert not part.exists() or list(part.iterdir()) == []


@pytest.mark.anyio
async def test_unauthenticated_upload_is_rejected_before_the_body_is_read(async_client):
    sent = {}
    r = await async_client.post(
        "/nitroshare/api/upload",
        content=body_stream(split_body(multipart_body(b"a" * 1000), 4), sent=sent),
        headers={"Content-Type": MULTIPART_CONTENT_TYPE},
    )

    assert r.status_code == 401
    assert sent.get("bytes", 0) == 0


# ─────────────────────────────────────────────────────────────
# 📚 Catalog / delete
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_listing_is_newest_first_with_links(async_client):
    first = (await async_client.post("/nitroshare/api/upload", files=_video(b"1"), headers=auth_headers())).json()
    second = (await async_client.post("/nitroshare/api/upload", files=_video(b"22"), headers=auth_headers())).json()

    r = await async_client.get("/nitroshare/api/videos", headers=auth_headers())

    assert r.status_code == 200
    items = r.json()
    assert [i["filename"] for i in items] == [second["filename"], first["filename"]]
    assert items[0]["size"] == 2
    assert items[0]["mediaType"] == "video/mp4"
    assert items[0]["shareUrl"] == second["shareUrl"]
    assert items[0]["videoUrl"] == second["videoUrl"]
    assert _ts(items[0]["uploadTime"]) >= _ts(items[1]["uploadTime"])


@pytest.mark.anyio
async def test_partitions_are_isolated(async_client):
    await async_client.post("/nitroshare/api/upload", files=_video(), headers=auth_headers())

    r = await async_client.get("/nitroshare/api/videos", headers=auth_headers("bob-token"))
    assert r.json() == []


@pytest.mark.anyio
async def test_delete_removes_asset_then_404(async_client):
    up = (await async_client.post("/nitroshare/api/upload", files=_video(), headers=auth_headers())).json()

    r = await async_client.delete(f"/nitroshare/api/videos/{up['filename']}", headers=auth_headers())
    assert r.status_code == 200
    assert r.json() == {"message": "Video deleted successfully"}

    assert (await async_client.get("/nitroshare/api/videos", headers=auth_headers())).json() == []
    assert (await async_client.get(up["videoUrl"])).status_code == 404

    again = await async_client.delete(f"/nitroshare/api/videos/{up['filename']}", headers=auth_headers())
    assert again.status_code == 404
    assert again.json()["message"] == "Video not found"


@pytest.mark.anyio
async def test_cannot_delete_another_users_asset(async_client):
    up = (await async_client.post("/nitroshare/api/upload", files=_video(), headers=auth_headers())).json()

    r = await async_client.delete(f"/nitroshare/api/videos/{up['filename']}", headers=auth_headers("bob-token"))

    assert r.status_code == 404
    assert (await async_client.get(up["videoUrl"])).status_code == 200


@pytest.mark.anyio
async def test_delete_rejects_traversal_names(async_client):
    r = await async_client.delete("/nitroshare/api/videos/..%2F..%2Fsecret.mp4", headers=auth_headers())
    assert r.status_code == 404
