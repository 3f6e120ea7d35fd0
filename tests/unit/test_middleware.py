"""
Unit tests for the middleware units and the global pipeline.
"""

import json
import logging
import threading

import pytest

from devhost.http.response import HTTPStatus, ok
from devhost.middleware.base import FunctionMiddleware, MiddlewarePipeline, function_middleware
from devhost.middleware.build import BuildServingMiddleware
from devhost.middleware.live_reload import LiveReloadMiddleware
from devhost.middleware.logging import LoggingMiddleware

from conftest import FakeCompiler, build_config_for, make_request, wait_until


def passthrough(request):
    return ok(f"next {request.path}")


@pytest.fixture
def compiler(fake_compiler_factory):
    compiler = fake_compiler_factory(build_config_for("shop"))
    compiler.run()
    return compiler


class TestMiddlewarePipeline:
    """Tests for MiddlewarePipeline."""

    def test_order(self):
        """Test that the first middleware added runs outermost."""
        calls = []

        def make(label):
            def mw(request, next):
                calls.append(f"{label} in")
                response = next(request)
                calls.append(f"{label} out")
                return response
            return FunctionMiddleware(mw, name=label)

        pipeline = MiddlewarePipeline().use(make("a"), make("b"))
        pipeline.wrap(passthrough)(make_request("/"))

        assert calls == ["a in", "b in", "b out", "a out"]
        assert len(pipeline) == 2
        assert [m.name for m in pipeline] == ["a", "b"]

    def test_short_circuit(self):
        """Test that a middleware can answer without calling next."""
        @function_middleware
        def blocker(request, next):
            return ok("blocked")

        handler = MiddlewarePipeline().add(blocker).wrap(passthrough)

        assert handler(make_request("/x")).body == b"blocked"
        assert blocker.name == "blocker"


class TestBuildServingMiddleware:
    """Tests for BuildServingMiddleware."""

    def test_serves_index_for_root(self, compiler):
        """Test that "/" serves index.html."""
        unit = BuildServingMiddleware(compiler)

        response = unit(make_request("/"), passthrough)

        assert response.status == HTTPStatus.OK
        assert response.body == b"<html>shop</html>"
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_serves_bundle_with_headers(self, compiler):
        """Test the bundle gets ETag, no-cache and the extra header."""
        unit = BuildServingMiddleware(compiler)

        response = unit(make_request("/bundle.js"), passthrough)

        assert response.body == b"/* shop build 1 */"
        assert response.headers["ETag"] == '"shop-1"'
        assert response.headers["Cache-Control"] == "no-cache"
        assert response.headers["X-Custom-Header"] == "yes"

    def test_custom_headers(self, compiler):
        """Test that headers can be replaced."""
        unit = BuildServingMiddleware(compiler, headers={"X-Env": "dev"})

        response = unit(make_request("/bundle.js"), passthrough)

        assert response.headers["X-Env"] == "dev"
        assert "X-Custom-Header" not in response.headers

    def test_unknown_file_calls_next(self, compiler):
        """Test that paths outside the build output fall through."""
        unit = BuildServingMiddleware(compiler)

        assert unit(make_request("/missing.css"), passthrough).body == b"next /missing.css"

    def test_post_calls_next(self, compiler):
        """Test that only GET and HEAD are served."""
        unit = BuildServingMiddleware(compiler)

        assert unit(make_request("/bundle.js", method="POST"), passthrough).body == b"next /bundle.js"

    def test_etag_match_is_304(self, compiler):
        """Test If-None-Match with the current hash."""
        unit = BuildServingMiddleware(compiler)

        response = unit(make_request("/bundle.js", If_None_Match='"shop-1"'), passthrough)

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""

    def test_stale_etag_is_200(self, compiler):
        """Test that an old hash gets the new content."""
        unit = BuildServingMiddleware(compiler)
        compiler.rebuild()

        response = unit(make_request("/bundle.js", If_None_Match='"shop-1"'), passthrough)

        assert response.status == HTTPStatus.OK
        assert response.body == b"/* shop build 2 */"

    def test_head(self, compiler):
        """Test HEAD keeps Content-Length but drops the body."""
        unit = BuildServingMiddleware(compiler)

        response = unit(make_request("/bundle.js", method="HEAD"), passthrough)

        assert response.body == b""
        assert response.headers["Content-Length"] == str(len(b"/* shop build 1 */"))

    def test_waits_for_rebuild(self, compiler):
        """Test that a request during a rebuild gets the new output."""
        unit = BuildServingMiddleware(compiler, build_timeout=5.0)
        compiler.invalidate()
        threading.Timer(0.05, compiler.run).start()

        response = unit(make_request("/bundle.js"), passthrough)

        assert response.body == b"/* shop build 2 */"

    def test_503_when_build_never_lands(self, compiler):
        """Test that an unfinished build answers 503 after build_timeout."""
        unit = BuildServingMiddleware(compiler, build_timeout=0.05)
        compiler.invalidate()

        response = unit(make_request("/bundle.js"), passthrough)

        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE

    def test_closed_calls_next(self, compiler):
        """Test that a closed unit serves nothing."""
        unit = BuildServingMiddleware(compiler)
        unit.close()
        unit.close()

        assert unit.closed
        assert unit(make_request("/"), passthrough).body == b"next /"

    def test_closed_compiler_calls_next(self, compiler):
        """Test that a closed compiler falls through after the wait."""
        unit = BuildServingMiddleware(compiler)
        compiler.close()

        assert unit(make_request("/bundle.js"), passthrough).body == b"next /bundle.js"


class TestLiveReloadMiddleware:
    """Tests for the long-poll endpoint."""

    def test_other_paths_call_next(self, compiler):
        """Test that only the endpoint path is handled."""
        unit = LiveReloadMiddleware(compiler)

        assert unit(make_request("/bundle.js"), passthrough).body == b"next /bundle.js"

    def test_first_poll_answers_now(self, compiler):
        """Test that a poll without a hash gets the current hash."""
        unit = LiveReloadMiddleware(compiler)

        response = unit(make_request("/__hmr"), passthrough)

        assert json.loads(response.body) == {"hash": "shop-1"}
        assert response.headers["Cache-Control"] == "no-cache"

    def test_stale_hash_answers_now(self, compiler):
        """Test that a client with an old hash is told immediately."""
        unit = LiveReloadMiddleware(compiler)
        compiler.rebuild()

        response = unit(make_request("/__hmr?hash=shop-1"), passthrough)

        assert json.loads(response.body) == {"hash": "shop-2", "stale": True}

    def test_parked_client_woken_by_rebuild(self, compiler):
        """Test that a current client waits until the next build."""
        unit = LiveReloadMiddleware(compiler, timeout=5.0)
        results = []
        worker = threading.Thread(
            target=lambda: results.append(unit(make_request("/__hmr?hash=shop-1"), passthrough)),
        )
        worker.start()
        assert wait_until(lambda: unit.waiting == 1)

        compiler.rebuild()
        worker.join(5)

        assert json.loads(results[0].body) == {"hash": "shop-2", "stale": True}
        assert unit.waiting == 0

    def test_parked_client_times_out(self, compiler):
        """Test that with no rebuild the client gets its own hash back."""
        unit = LiveReloadMiddleware(compiler, timeout=0.05)

        response = unit(make_request("/__hmr?hash=shop-1"), passthrough)

        assert json.loads(response.body) == {"hash": "shop-1", "stale": False}

    def test_close_wakes_with_410(self, compiler):
        """Test that close() answers every parked client with 410."""
        unit = LiveReloadMiddleware(compiler, timeout=5.0)
        results = []
        workers = [
            threading.Thread(
                target=lambda: results.append(unit(make_request("/__hmr?hash=shop-1"), passthrough)),
            )
            for _ in range(3)
        ]
        for worker in workers:
            worker.start()
        assert wait_until(lambda: unit.waiting == 3)

        unit.close()
        for worker in workers:
            worker.join(5)

        assert [r.status for r in results] == [HTTPStatus.GONE] * 3

    def test_closed_answers_410(self, compiler):
        """Test that polls after close() are refused."""
        unit = LiveReloadMiddleware(compiler)
        unit.close()

        assert unit(make_request("/__hmr"), passthrough).status == HTTPStatus.GONE

    def test_close_removes_listener(self, compiler):
        """Test that later builds no longer reach a closed unit."""
        unit = LiveReloadMiddleware(compiler)
        unit.close()

        compiler.rebuild()

        assert unit.current_hash == "shop-1"

    def test_hash_from_first_build(self, fake_compiler_factory):
        """Test that a unit created before any build starts with no hash."""
        compiler = fake_compiler_factory(build_config_for("shop"))
        unit = LiveReloadMiddleware(compiler)

        assert unit.current_hash is None
        compiler.run()
        assert unit.current_hash == "shop-1"


class TestLoggingMiddleware:
    """Tests for the access log."""

    def test_request_id_header(self):
        """Test that responses carry an 8-character X-Request-ID."""
        unit = LoggingMiddleware()

        response = unit(make_request("/projects"), passthrough)

        assert len(response.headers["X-Request-ID"]) == 8

    def test_request_id_disabled(self):
        """Test include_request_id=False."""
        unit = LoggingMiddleware(include_request_id=False)

        assert "X-Request-ID" not in unit(make_request("/"), passthrough).headers

    def test_text_line(self, caplog):
        """Test the Apache-style access line."""
        unit = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="devhost.access"):
            unit(make_request("/shop/bundle.js"), passthrough)

        assert '"GET /shop/bundle.js" 200' in caplog.text

    def test_json_line(self, caplog):
        """Test the JSON access line."""
        unit = LoggingMiddleware(log_format="json")

        with caplog.at_level(logging.INFO, logger="devhost.access"):
            unit(make_request("/shop/?v=2"), passthrough)

        record = json.loads(caplog.records[-1].getMessage())
        assert record["path"] == "/shop/"
        assert record["query"] == "v=2"
        assert record["status_code"] == 200

    def test_live_reload_is_quiet(self, caplog):
        """Test that long-polls log at DEBUG."""
        unit = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="devhost.access"):
            unit(make_request("/shop/__hmr"), passthrough)

        assert caplog.records == []

    def test_exception_logged_and_raised(self, caplog):
        """Test that a failing handler is logged and re-raised."""
        unit = LoggingMiddleware()

        def broken(request):
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="devhost.access"):
            with pytest.raises(RuntimeError):
                unit(make_request("/x"), broken)

        assert "Request failed: GET /x" in caplog.text
