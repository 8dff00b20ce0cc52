"""Generated clients talking to generated Flask, Starlette and aiohttp servers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from types import ModuleType
from typing import Any

import aiohttp.test_utils
import aiohttp.web
import flask
import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.testclient import TestClient

from .fixture_helpers import fixture_path, generate_module

_SPEC = fixture_path("parameters.yaml")


@pytest.fixture(scope="module")
def flask_api(tmp_path_factory: pytest.TempPathFactory) -> ModuleType:
    return generate_module(
        _SPEC, tmp_path_factory.mktemp("flask"), targets=["models", "client", "flask-server"]
    )


@pytest.fixture(scope="module")
def starlette_api(tmp_path_factory: pytest.TempPathFactory) -> ModuleType:
    return generate_module(
        _SPEC, tmp_path_factory.mktemp("starlette"), targets=["models", "client", "starlette-server"]
    )


@pytest.fixture(scope="module")
def aiohttp_api(tmp_path_factory: pytest.TempPathFactory) -> ModuleType:
    return generate_module(_SPEC, tmp_path_factory.mktemp("aiohttp"), targets=["models", "aiohttp-server"])


def _label_params(api: ModuleType, **overrides: Any) -> Any:
    values: dict[str, Any] = {
        "ids": [1, 2],
        "filter": api.Filter(kind="a", limit=3),
        "coords": api.Coordinates(lat=1.5, lon=2.0),
        "x_request_id": "req-1",
        "session": "abc",
    }
    values.update(overrides)
    return api.GetItemLabelParams(**values)


class _FlaskHandler:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def get_item_label(self, item_id: int, label: str, params: Any) -> flask.typing.ResponseReturnValue:
        self.calls.append((item_id, label, params))
        if label == "boom":
            return flask.Response("failed", status=503, content_type="text/plain")
        return flask.jsonify({"name": label, "color": f"item-{item_id}"})

    def add_note(self, item_id: int) -> flask.typing.ResponseReturnValue:
        self.calls.append((item_id, flask.request.mimetype, flask.request.get_data()))
        return "", 204

    def get_things(self, names: list[str], params: Any) -> flask.typing.ResponseReturnValue:
        self.calls.append((names, params))
        return "", 204


def _flask_client(
    api: ModuleType,
    handler: _FlaskHandler,
    *,
    base_url: str = "",
    middlewares: tuple[Callable[..., Any], ...] = (),
) -> tuple[Any, httpx.Client]:
    app = flask.Flask(__name__)
    if base_url:
        api.register_handlers_with_base_url(app, handler, base_url, middlewares=middlewares)
    else:
        api.register_handlers(app, handler, middlewares=middlewares)
    http_client = httpx.Client(transport=httpx.WSGITransport(app=app))
    return api.ClientWithResponses("http://testserver" + base_url, http_client=http_client), http_client


def test_flask_round_trip_decodes_every_parameter(flask_api: ModuleType) -> None:
    """Each parameter style survives encoding by the client and binding by the server."""
    handler = _FlaskHandler()
    client, _ = _flask_client(flask_api, handler)

    result = client.get_item_label_with_response(5, "blue", params=_label_params(flask_api))

    assert result.status_code() == 200
    assert result.json200 == flask_api.Label(name="blue", color="item-5")
    ((item_id, label, params),) = handler.calls
    assert (item_id, label) == (5, "blue")
    assert params == _label_params(flask_api)


def test_flask_optional_parameters_may_be_absent(flask_api: ModuleType) -> None:
    """Optional query and cookie parameters arrive as None."""
    handler = _FlaskHandler()
    client, _ = _flask_client(flask_api, handler)

    client.get_item_label_with_response(
        9, "red", params=flask_api.GetItemLabelParams(x_request_id="req-2")
    )

    params = handler.calls[0][2]
    assert params.ids is None
    assert params.filter is None
    assert params.coords is None
    assert params.session is None
    assert params.x_request_id == "req-2"


def test_flask_status_range_responses_are_not_decoded_as_json(flask_api: ModuleType) -> None:
    """Text responses keep their body without a decoded value."""
    client, _ = _flask_client(flask_api, _FlaskHandler())
    result = client.get_item_label_with_response(5, "boom", params=_label_params(flask_api))
    assert result.status_code() == 503
    assert result.json200 is None
    assert result.text5xx is None
    assert result.body == b"failed"


@pytest.mark.parametrize(
    ("path", "headers", "message"),
    [
        ("/items/abc/labels/.blue", {"X-Request-ID": "r"}, "Invalid format for parameter itemId"),
        ("/items/1/labels/.blue", {}, "Invalid format for parameter X-Request-ID"),
        ("/items/1/labels/blue", {"X-Request-ID": "r"}, "Invalid format for parameter label"),
        ("/items/1/labels/.blue?ids=1|x", {"X-Request-ID": "r"}, "Invalid format for parameter ids"),
        ("/items/1/labels/.blue?coords={", {"X-Request-ID": "r"}, "Invalid format for parameter coords"),
    ],
)
def test_flask_binding_errors_are_bad_requests(
    flask_api: ModuleType, path: str, headers: dict[str, str], message: str
) -> None:
    """Parameters that cannot be bound produce a 400 without calling the handler."""
    handler = _FlaskHandler()
    _, http_client = _flask_client(flask_api, handler)
    response = http_client.get("http://testserver" + path, headers=headers)
    assert response.status_code == 400
    assert message in response.text
    assert handler.calls == []


def test_flask_request_bodies(flask_api: ModuleType) -> None:
    """Every body variant sends its own media type; the server sees the raw body."""
    handler = _FlaskHandler()
    client, _ = _flask_client(flask_api, handler)
    note = flask_api.Note(text="hi there", pinned=True)

    assert client.add_note_with_response(4, note).status_code() == 204
    client.add_note_with_formdata_body_with_response(4, note)
    client.add_note_with_text_body_with_response(4, "plain words")
    client.add_note_with_body_with_response(4, "application/octet-stream", b"\x00\x01")

    assert handler.calls == [
        (4, "application/json", b'{"text": "hi there", "pinned": true}'),
        (4, "application/x-www-form-urlencoded", b"pinned=true&text=hi+there"),
        (4, "text/plain", b"plain words"),
        (4, "application/octet-stream", b"\x00\x01"),
    ]


def test_flask_exploded_object_query_leaves_sibling_parameters_alone(flask_api: ModuleType) -> None:
    """Keys of other query parameters never end up in an exploded object."""
    handler = _FlaskHandler()
    client, _ = _flask_client(flask_api, handler)

    client.get_things_with_response(
        ["a"], params=flask_api.GetThingsParams(attrs={"color": "red"}, limit=5)
    )
    client.get_things_with_response(["a"], params=flask_api.GetThingsParams(limit=7))

    (_, with_attrs), (_, without_attrs) = handler.calls
    assert with_attrs.attrs == {"color": "red"}
    assert with_attrs.limit == 5
    assert without_attrs.attrs is None
    assert without_attrs.limit == 7


def test_flask_path_items_keep_encoded_delimiters(flask_api: ModuleType) -> None:
    """Path array items containing the delimiter are bound from the raw request path."""
    handler = _FlaskHandler()
    app = flask.Flask(__name__)
    flask_api.register_handlers(app, handler)
    request = flask_api.build_get_things_request("http://testserver", ["a,b", "c"])
    assert request.url.raw_path == b"/things/a%2Cb,c"

    response = app.test_client().get(request.url.raw_path.decode("ascii"))

    assert response.status_code == 204
    assert handler.calls[0][0] == ["a,b", "c"]


def _tagging(tag: str, order: list[str]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def _middleware(view: Callable[..., Any]) -> Callable[..., Any]:
        def _wrapped(*args: Any, **kwargs: Any) -> Any:
            order.append(tag)
            return view(*args, **kwargs)

        return _wrapped

    return _middleware


def test_flask_middlewares_run_last_to_first(flask_api: ModuleType) -> None:
    """The last middleware given is the outermost by default."""
    order: list[str] = []
    client, _ = _flask_client(
        flask_api,
        _FlaskHandler(),
        middlewares=(_tagging("first", order), _tagging("second", order)),
    )
    client.get_item_label_with_response(1, "x", params=_label_params(flask_api))
    assert order == ["second", "first"]


def test_flask_middlewares_first_to_last_compatibility(tmp_path: Path) -> None:
    """apply-flask-middleware-first-to-last runs middlewares in the given order."""
    api = generate_module(
        _SPEC,
        tmp_path,
        targets=["models", "client", "flask-server"],
        compatibility={"apply-flask-middleware-first-to-last": True},
    )
    order: list[str] = []
    client, _ = _flask_client(
        api,
        _FlaskHandler(),
        base_url="/v1",
        middlewares=(_tagging("first", order), _tagging("second", order)),
    )
    result = client.get_item_label_with_response(1, "x", params=_label_params(api))
    assert result.status_code() == 200
    assert order == ["first", "second"]


class _StarletteHandler:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    async def get_item_label(
        self, request: Request, item_id: int, label: str, params: Any
    ) -> Response:
        self.calls.append((item_id, label, params))
        return JSONResponse({"name": label, "color": request.url.path})

    async def add_note(self, request: Request, item_id: int) -> Response:
        self.calls.append((item_id, request.headers["content-type"], await request.body()))
        return Response(status_code=204)

    async def get_things(self, request: Request, names: list[str], params: Any) -> Response:
        self.calls.append((names, params))
        return Response(status_code=204)


def test_starlette_round_trip(starlette_api: ModuleType) -> None:
    """The Starlette wrapper binds the same parameters as the Flask one."""
    handler = _StarletteHandler()
    order: list[str] = []

    def _tag(tag: str) -> Callable[[Any], Any]:
        def _middleware(endpoint: Callable[[Request], Awaitable[Response]]) -> Any:
            async def _wrapped(request: Request) -> Response:
                order.append(tag)
                return await endpoint(request)

            return _wrapped

        return _middleware

    app = Starlette()
    starlette_api.register_handlers(app.router, handler, middlewares=[_tag("first"), _tag("second")])
    with TestClient(app) as test_client:
        client = starlette_api.ClientWithResponses("http://testserver", http_client=test_client)
        result = client.get_item_label_with_response(7, "green", params=_label_params(starlette_api))
        client.add_note_with_text_body_with_response(7, "note")
        bad = test_client.get("/items/7/labels/.green")

    assert result.json200 == starlette_api.Label(name="green", color="/items/7/labels/.green")
    assert handler.calls[0][:2] == (7, "green")
    assert handler.calls[0][2] == _label_params(starlette_api)
    assert handler.calls[1] == (7, "text/plain", b"note")
    assert order == ["first", "second", "first", "second", "first", "second"]
    assert bad.status_code == 400
    assert "X-Request-ID" in bad.text


def test_starlette_path_items_keep_encoded_delimiters(starlette_api: ModuleType) -> None:
    """Starlette path values are split before they are unescaped."""
    handler = _StarletteHandler()
    app = Starlette()
    starlette_api.register_handlers(app.router, handler)
    with TestClient(app) as test_client:
        client = starlette_api.ClientWithResponses("http://testserver", http_client=test_client)
        result = client.get_things_with_response(
            ["a,b", "c"], params=starlette_api.GetThingsParams(attrs={"size": "L"}, limit=2)
        )

    assert result.status_code() == 204
    names, params = handler.calls[0]
    assert names == ["a,b", "c"]
    assert params == starlette_api.GetThingsParams(attrs={"size": "L"}, limit=2)


class _AiohttpHandler:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    async def get_item_label(
        self, request: aiohttp.web.Request, item_id: int, label: str, params: Any
    ) -> aiohttp.web.StreamResponse:
        self.calls.append((item_id, label, params))
        return aiohttp.web.json_response({"name": label})

    async def add_note(self, request: aiohttp.web.Request, item_id: int) -> aiohttp.web.StreamResponse:
        self.calls.append((item_id, await request.text()))
        return aiohttp.web.Response(status=204)


def test_aiohttp_round_trip(aiohttp_api: ModuleType) -> None:
    """The aiohttp wrapper binds parameters and rejects malformed ones."""
    handler = _AiohttpHandler()
    order: list[str] = []

    def _tag(tag: str) -> Callable[[Any], Any]:
        def _middleware(inner: Callable[[aiohttp.web.Request], Awaitable[Any]]) -> Any:
            async def _wrapped(request: aiohttp.web.Request) -> Any:
                order.append(tag)
                return await inner(request)

            return _wrapped

        return _middleware

    async def _exercise() -> tuple[int, dict[str, Any], int, int, str]:
        app = aiohttp.web.Application()
        aiohttp_api.register_handlers(app.router, handler, middlewares=[_tag("first"), _tag("second")])
        async with aiohttp.test_utils.TestClient(aiohttp.test_utils.TestServer(app)) as client:
            ok = await client.get(
                "/items/3/labels/.blue",
                params={"ids": "4|5", "filter[kind]": "b", "coords": '{"lat": 1, "lon": 2}'},
                headers={"X-Request-ID": "req-3", "Cookie": "session=xyz"},
            )
            payload = await ok.json()
            note = await client.post("/items/3/notes", data=b"hello")
            bad = await client.get("/items/x/labels/.blue", headers={"X-Request-ID": "r"})
            return ok.status, payload, note.status, bad.status, await bad.text()

    status, payload, note_status, bad_status, bad_text = asyncio.run(_exercise())

    assert (status, payload) == (200, {"name": "blue"})
    item_id, label, params = handler.calls[0]
    assert (item_id, label) == (3, "blue")
    assert params.ids == [4, 5]
    assert params.filter == aiohttp_api.Filter(kind="b")
    assert params.coords == aiohttp_api.Coordinates(lat=1, lon=2)
    assert (params.x_request_id, params.session) == ("req-3", "xyz")
    assert note_status == 204
    assert handler.calls[1] == (3, "hello")
    assert bad_status == 400
    assert "Invalid format for parameter itemId" in bad_text
    assert order[:2] == ["second", "first"]
