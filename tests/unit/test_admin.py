"""
Unit tests for the admin routes.
"""

import io
import json
import tarfile

import pytest

from devhost.handlers import admin_router
from devhost.http.front import RouterFront
from devhost.http.response import HTTPStatus
from devhost.projects.names import RESERVED_NAMES
from devhost.projects.registry import ProjectRegistry, RegistryContext

from conftest import FakeCompiler, make_request


@pytest.fixture
def admin(projects_dir, fake_compiler_factory):
    front = RouterFront(lambda r: router.handle(r))
    registry = ProjectRegistry(RegistryContext(
        front=front,
        projects_dir=str(projects_dir),
        compiler_factory=fake_compiler_factory,
    ))
    router = admin_router(registry, str(projects_dir))
    yield front, registry
    registry.close_all()


class TestAddRemove:
    """Tests for /add/:name and /remove/:name."""

    def test_add(self, admin, make_project):
        """Test the success message and the mounted project."""
        front, registry = admin
        make_project("shop")

        response = front.handle(make_request("/add/shop"))

        assert response.status == HTTPStatus.OK
        assert response.text == "Build config [shop] has been added"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert registry.names() == ["shop"]
        assert front.handle(make_request("/shop/")).body == b"<html>shop</html>"

    def test_add_sanitized_name(self, admin, make_project):
        """Test that the message uses the sanitized name."""
        front, registry = admin
        make_project("my_project")

        response = front.handle(make_request("/add/my%20project;ls"))

        assert response.text == "Build config [my_project] has been added"

    def test_add_failure_is_200(self, admin):
        """Test that a failed add still answers 200 with an error message."""
        front, registry = admin

        response = front.handle(make_request("/add/ghost"))

        assert response.status == HTTPStatus.OK
        assert response.text == "Error adding config [ghost]"
        assert registry.names() == []

    def test_add_empty_after_sanitizing(self, admin):
        """Test that a name that sanitizes to nothing is an error message."""
        front, registry = admin

        response = front.handle(make_request("/add/;ls"))

        assert response.text == "Error adding config [;ls]"

    def test_add_admin_name(self, admin, make_project):
        """Test that /add/projects is refused and /projects keeps answering."""
        front, registry = admin
        make_project("projects")

        response = front.handle(make_request("/add/projects"))

        assert response.text == "Error adding config [projects]"
        assert registry.names() == []
        assert json.loads(front.handle(make_request("/projects")).body) == []

    def test_reserved_names_cover_routes(self, admin, projects_dir):
        """Test that every admin route's first segment is a reserved name."""
        _, registry = admin
        router = admin_router(registry, str(projects_dir))

        first_segments = {r.path.strip("/").split("/")[0] for r in router.routes()}

        assert first_segments == set(RESERVED_NAMES)

    def test_remove(self, admin, make_project):
        """Test that remove answers and the project stops being served."""
        front, registry = admin
        make_project("shop")
        front.handle(make_request("/add/shop"))

        response = front.handle(make_request("/remove/shop"))

        assert response.text == "Build config [shop] has been removed"
        assert registry.names() == []
        assert front.handle(make_request("/shop/")).status == HTTPStatus.NOT_FOUND

    def test_remove_unknown(self, admin):
        """Test that removing an unknown project still reports success."""
        front, _ = admin

        assert front.handle(make_request("/remove/ghost")).text == "Build config [ghost] has been removed"

    def test_post_not_allowed(self, admin):
        """Test that admin routes are GET only."""
        front, _ = admin

        response = front.handle(make_request("/add/shop", method="POST"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED


class TestProjects:
    """Tests for /projects."""

    def test_lists_mounted_names(self, admin, make_project):
        """Test a sorted JSON list of mounted projects."""
        front, _ = admin
        make_project("shop")
        make_project("blog")
        front.handle(make_request("/add/shop"))
        front.handle(make_request("/add/blog"))

        response = front.handle(make_request("/projects"))

        assert json.loads(response.body) == ["blog", "shop"]

    def test_empty(self, admin):
        """Test the empty list."""
        front, _ = admin
        assert json.loads(front.handle(make_request("/projects")).body) == []


class TestExport:
    """Tests for /export/:name."""

    def test_export_archive(self, admin, make_project):
        """Test that the download is a gzip tar of the project directory."""
        front, _ = admin
        make_project("shop")

        response = front.handle(make_request("/export/shop"))

        assert response.headers["Content-Type"] == "application/gzip"
        assert response.headers["Content-Disposition"] == 'attachment; filename="shop.tar.gz"'
        with tarfile.open(fileobj=io.BytesIO(response.body), mode="r:gz") as tar:
            names = set(tar.getnames())
            assert tar.extractfile("src/main.js").read() == b"console.log('hello');\n"
        assert {"devhost.yaml", "index.html", "assets/logo.svg"} <= names

    def test_export_does_not_need_mount(self, admin, make_project):
        """Test that an unmounted project can be exported."""
        front, registry = admin
        make_project("blog")

        response = front.handle(make_request("/export/blog"))

        assert registry.names() == []
        assert response.body[:2] == b"\x1f\x8b"

    def test_export_unknown(self, admin):
        """Test the not-found message."""
        front, _ = admin

        assert front.handle(make_request("/export/ghost")).text == "Project [ghost] not found"

    def test_unknown_route_is_404(self, admin):
        """Test that nothing else is routed."""
        front, _ = admin

        response = front.handle(make_request("/nothing/here"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert FakeCompiler.instances == []
