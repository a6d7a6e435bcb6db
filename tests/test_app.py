import json
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from conftest import json_response
from storefront import deps
from storefront.app import app
from storefront.fal_client import FalClient
from storefront.printful_client import PrintfulClient
from storefront.sessions import GenerationSessions
from storefront.supabase_client import SupabaseClient
from storefront.utils import PromptEnhancer


def fal_handler(request: httpx.Request):
    prompt = json.loads(request.content)["prompt"]
    if prompt.startswith("broken"):
        return httpx.Response(500, text="model crashed")
    slug = prompt.split(".")[0].replace(" ", "-")
    return json_response(200, {"images": [{"url": f"https://fal.media/{slug}.png"}], "seed": 99})


class FakeBackend:
    """Records inserts against the database REST API and hands back ids."""

    def __init__(self):
        self.inserts = []

    def __call__(self, request: httpx.Request):
        table = request.url.path.rsplit("/", 1)[-1]
        if request.method == "POST":
            row = json.loads(request.content)
            self.inserts.append((table, row))
            return json_response(201, [{"id": f"{table}-{len(self.inserts)}", **row}])
        return json_response(404, {"message": "unexpected"})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(fake_redis, sleeps, backend):
    fal = FalClient(
        base_url="https://fal.run",
        api_key="server-key",
        proxy_url="",
        batch_pause=1.0,
        transport=httpx.MockTransport(fal_handler),
        sleep=sleeps,
    )
    sessions = GenerationSessions(fal, tick_interval=0)

    app.dependency_overrides[deps.get_fal_client] = lambda: fal
    app.dependency_overrides[deps.get_sessions] = lambda: sessions
    app.dependency_overrides[deps.get_redis] = lambda: fake_redis
    app.dependency_overrides[deps.get_db] = lambda: SupabaseClient(
        base_url="http://db.test", api_key="anon", transport=httpx.MockTransport(backend)
    )
    app.dependency_overrides[deps.get_prompt_enhancer] = lambda: PromptEnhancer(api_key=None)

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def use_printful(handler):
    printful = PrintfulClient(
        base_url="https://api.printful.test/v2",
        api_key="pf",
        transport=httpx.MockTransport(handler),
    )
    app.dependency_overrides[deps.get_printful_client] = lambda: printful
    return printful


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_generate_image_returns_url_and_seed(client):
    r = client.post("/api/generate-image", json={"prompt": "neon cityscape", "style": "synthwave"})
    assert r.status_code == 200
    assert r.json() == {"imageUrl": "https://fal.media/neon-cityscape.png", "seed": 99}


def test_generate_image_requires_prompt(client):
    r = client.post("/api/generate-image", json={"prompt": "  "})
    assert r.status_code == 400
    assert r.json() == {"error": "Prompt is required"}


def test_generate_image_upstream_failure_is_502(client, sleeps):
    r = client.post("/api/generate-image", json={"prompt": "broken robot"})
    assert r.status_code == 502
    assert r.json() == {"error": "Failed to generate image"}
    assert sleeps.delays == [1.0, 2.0]


def test_malformed_body_is_400(client):
    r = client.post("/api/generate-image", json={"style": "retro"})
    assert r.status_code == 400
    assert r.json()["error"].startswith("Validation error")


def test_generation_endpoints_are_rate_limited(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_GENERATE", 1)

    assert client.post("/api/generate-image", json={"prompt": "fox"}).status_code == 200
    r = client.post("/api/generate-image", json={"prompt": "fox"})

    assert r.status_code == 429
    assert r.headers["X-RateLimit-Limit"] == "1"
    assert r.headers["X-RateLimit-Remaining"] == "0"


def test_generation_session_lifecycle(client):
    r = client.post("/api/generations", json={"prompt": "neon cityscape", "style": "synthwave"})
    assert r.status_code == 200
    generation_id = r.json()["generationId"]

    for _ in range(200):
        snapshot = client.get(f"/api/generations/{generation_id}").json()
        if snapshot["imageUrl"]:
            break
        time.sleep(0.01)

    assert snapshot["status"] == "completed"
    assert snapshot["progress"] == 100
    assert snapshot["imageUrl"] == "https://fal.media/neon-cityscape.png"
    assert snapshot["error"] is None


def test_generation_failure_then_retry(client):
    generation_id = client.post("/api/generations", json={"prompt": "broken robot"}).json()["generationId"]

    for _ in range(200):
        snapshot = client.get(f"/api/generations/{generation_id}").json()
        if snapshot["status"] == "failed":
            break
        time.sleep(0.01)

    assert snapshot["status"] == "failed"
    assert "3 attempt" in snapshot["error"]

    r = client.post(f"/api/generations/{generation_id}/retry")
    assert r.status_code == 200
    assert r.json()["status"] == "preparing"


def test_cancel_generation(client):
    generation_id = client.post("/api/generations", json={"prompt": "fox"}).json()["generationId"]
    r = client.delete(f"/api/generations/{generation_id}")

    assert r.status_code == 200
    # the run may already have finished; a finished run is left as it was
    assert r.json()["status"] in ("idle", "completed")


def test_unknown_generation_is_404(client):
    r = client.get("/api/generations/gen_missing")
    assert r.status_code == 404
    assert r.json() == {"error": "Generation not found"}


def test_batch_generate_rejects_empty_list(client):
    r = client.post("/api/fal/batch-generate", json={"requests": []})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid requests array"}


def test_batch_generate_isolates_failures(client, backend, sleeps):
    body = {
        "requests": [
            {"prompt": "alpine lake", "style": "landscape", "tags": ["nature"]},
            {"prompt": "broken robot", "style": "retro"},
            {"prompt": "nebula", "style": "space", "category": "cosmic"},
        ]
    }
    r = client.post("/api/fal/batch-generate", json=body)

    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["projectId"] == "projects-1"
    assert [item["success"] for item in data["results"]] == [True, False, True]
    assert data["results"][0]["imageUrl"] == "https://fal.media/alpine-lake.png"
    assert data["results"][1]["error"]
    assert (data["totalRequests"], data["successfulRequests"], data["failedRequests"]) == (3, 2, 1)

    tables = [table for table, _ in backend.inserts]
    assert tables == ["projects", "designs", "designs"]
    design = backend.inserts[1][1]
    assert design["project_id"] == "projects-1"
    assert design["metadata"]["generationParams"]["seed"] == 99
    assert design["metadata"]["tags"] == ["nature"]
    assert isinstance(design["metadata"]["generatedAt"], int)
    # pause, two backoffs for the broken prompt, pause
    assert sleeps.delays == [1.0, 1.0, 2.0, 1.0]


def test_batch_generate_uses_given_project(client, backend):
    r = client.post(
        "/api/fal/batch-generate",
        json={"requests": [{"prompt": "fox"}], "projectId": "p-42"},
    )
    assert r.json()["projectId"] == "p-42"
    assert [table for table, _ in backend.inserts] == ["designs"]


def test_fal_proxy_requires_target_header(client):
    r = client.post("/api/fal/proxy", json={"prompt": "x"})
    assert r.status_code == 400


def test_fal_proxy_rejects_foreign_hosts(client):
    r = client.post("/api/fal/proxy", json={"prompt": "x"}, headers={"x-fal-target-url": "https://evil.test/run"})
    assert r.status_code == 400
    assert "not allowed" in r.json()["error"]


def test_fal_proxy_forwards_verbatim(client):
    r = client.post(
        "/api/fal/proxy",
        json={"prompt": "fox. Style: retro"},
        headers={"x-fal-target-url": "https://fal.run/fal-ai/flux/dev"},
    )
    assert r.status_code == 200
    assert r.json()["images"][0]["url"] == "https://fal.media/fox.png"

    r = client.post(
        "/api/fal/proxy",
        json={"prompt": "broken"},
        headers={"x-fal-target-url": "https://fal.run/fal-ai/flux/dev"},
    )
    assert r.status_code == 500
    assert r.text == "model crashed"


def test_enhance_prompt_falls_back_without_llm(client):
    r = client.post("/api/enhance-prompt", json={"prompt": "a nice fox", "style": "neon"})
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["enhancedPrompt"].startswith("a nice fox, neon style")
    assert data["enhancedPrompt"].endswith("high quality, detailed, professional")
    assert any('"nice"' in s for s in data["suggestions"])


def test_image_proxy_validates_url(client):
    use_printful(lambda request: httpx.Response(200))
    assert client.get("/api/printful/proxy/image").status_code == 400

    r = client.get("/api/printful/proxy/image", params={"url": "https://example.com/a.jpg"})
    assert r.status_code == 400
    assert r.json() == {"error": "Only Printful CDN URLs are allowed"}


def test_image_proxy_streams_cdn_image(client):
    def handler(request):
        assert request.url.host == "files.cdn.printful.com"
        return httpx.Response(200, content=b"\x89PNG-bytes", headers={"content-type": "image/png"})

    use_printful(handler)
    r = client.get("/api/printful/proxy/image", params={"url": "https://files.cdn.printful.com/m/1.png"})

    assert r.status_code == 200
    assert r.content == b"\x89PNG-bytes"
    assert r.headers["content-type"] == "image/png"
    assert r.headers["cache-control"] == "public, max-age=86400"


def test_image_proxy_passes_upstream_status(client):
    use_printful(lambda request: httpx.Response(404))
    r = client.get("/api/printful/proxy/image", params={"url": "https://files.cdn.printful.com/m/gone.png"})

    assert r.status_code == 404
    assert r.json()["error"].startswith("Failed to fetch image")


def test_mockup_route_requires_parameters(client):
    use_printful(lambda request: httpx.Response(200))
    r = client.post("/api/printful/v2/mockups", json={"productId": 71})
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required parameters"}


def test_product_sizes_route(client):
    variants = [{"size": "S", "color": "Black"}, {"size": "M", "color": "Black"}, {"size": "S", "color": "White"}]
    use_printful(lambda request: json_response(200, {"data": variants}))

    r = client.get("/api/printful/v2/utils/product-sizes", params={"productId": 71})
    assert r.json() == {"sizes": ["S", "M"]}


def test_batch_survives_a_failed_design_save(client):
    saved = []

    def flaky_backend(request: httpx.Request):
        row = json.loads(request.content)
        if row["prompt"] == "b":
            raise httpx.ConnectError("connection reset", request=request)
        saved.append(row["prompt"])
        return json_response(201, [{"id": f"d-{row['prompt']}", "image_url": row["image_url"]}])

    app.dependency_overrides[deps.get_db] = lambda: SupabaseClient(
        base_url="http://db.test", api_key="anon", transport=httpx.MockTransport(flaky_backend)
    )
    r = client.post(
        "/api/fal/batch-generate",
        json={"requests": [{"prompt": "a"}, {"prompt": "b"}, {"prompt": "c"}], "projectId": "p-1"},
    )

    assert r.status_code == 200
    data = r.json()
    assert [item["success"] for item in data["results"]] == [True, False, True]
    assert data["results"][1]["error"].startswith("Backend unavailable")
    assert [item["designId"] for item in data["results"]] == ["d-a", None, "d-c"]
    assert saved == ["a", "c"]
