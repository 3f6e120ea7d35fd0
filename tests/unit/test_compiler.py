"""
Unit tests for the Compiler base class and BundleCompiler.
"""

import os
import threading
import time

import pytest

from devhost.projects.build_config import LIVE_RELOAD_CLIENT_ENTRY, WatchOptions, load_build_config
from devhost.projects.compiler import BuildStats, BundleCompiler, live_reload_client

from conftest import FakeCompiler, build_config_for, wait_until


@pytest.fixture
def shop_config(projects_dir, make_project):
    make_project("shop")
    config = load_build_config(str(projects_dir), "shop")
    config.watch = WatchOptions(aggregate_timeout=0.05, poll_interval=0.05)
    return config


@pytest.fixture
def compiler(shop_config):
    compiler = BundleCompiler(shop_config)
    yield compiler
    compiler.close()


class TestCompilerBase:
    """Tests for listeners, output snapshots and the valid barrier."""

    def test_not_valid_before_first_build(self):
        """Test that a new compiler has no output and is not valid."""
        compiler = FakeCompiler(build_config_for("shop"))

        assert not compiler.is_valid
        assert compiler.output == {}
        assert compiler.stats is None
        assert compiler.wait_until_valid(0.01) is False

    def test_emit_done_notifies_listeners(self):
        """Test that listeners receive the stats of each build."""
        compiler = FakeCompiler(build_config_for("shop"))
        seen = []
        compiler.add_done_listener(seen.append)

        compiler.run()
        compiler.run()

        assert [s.hash for s in seen] == ["shop-1", "shop-2"]
        assert compiler.is_valid

    def test_failing_listener_does_not_stop_others(self):
        """Test that one listener raising still lets the rest run."""
        compiler = FakeCompiler(build_config_for("shop"))
        seen = []

        def broken(stats):
            raise RuntimeError("boom")

        compiler.add_done_listener(broken)
        compiler.add_done_listener(seen.append)
        compiler.run()

        assert len(seen) == 1

    def test_remove_listener(self):
        """Test that a removed listener is not called again."""
        compiler = FakeCompiler(build_config_for("shop"))
        seen = []
        compiler.add_done_listener(seen.append)
        compiler.remove_done_listener(seen.append)
        compiler.remove_done_listener(seen.append)

        compiler.run()

        assert seen == []

    def test_output_is_a_snapshot(self):
        """Test that mutating output does not touch the compiler."""
        compiler = FakeCompiler(build_config_for("shop"))
        compiler.run()

        compiler.output["index.html"] = b"changed"

        assert compiler.output["index.html"] == b"<html>shop</html>"

    def test_invalidate_blocks_until_next_build(self):
        """Test that waiters block after invalidate() until a build lands."""
        compiler = FakeCompiler(build_config_for("shop"))
        compiler.run()
        compiler.invalidate()

        assert compiler.wait_until_valid(0.01) is False
        threading.Timer(0.05, compiler.run).start()
        assert compiler.wait_until_valid(2.0) is True

    def test_close_releases_waiters(self):
        """Test that closing never leaves a waiter hanging."""
        compiler = FakeCompiler(build_config_for("shop"))

        compiler.close()

        assert compiler.closed
        assert compiler.wait_until_valid(0.01) is True
        compiler.invalidate()
        assert compiler.is_valid


class TestLiveReloadClient:
    """Tests for the inlined browser script."""

    def test_endpoint_under_public_path(self):
        """Test that the script polls <public_path>__hmr."""
        script = live_reload_client("/shop/", LIVE_RELOAD_CLIENT_ENTRY)

        assert '"/shop/__hmr"' in script
        assert "410" in script


class TestBundleCompiler:
    """Tests for BundleCompiler.run()."""

    def test_bundle_contains_client_and_entries(self, compiler):
        """Test bundle layout: client first, then each entry with a marker."""
        stats = compiler.run()
        bundle = compiler.output["bundle.js"].decode()

        assert stats.errors == []
        assert bundle.index(f"/* {LIVE_RELOAD_CLIENT_ENTRY} */") < bundle.index("/* ./src/main.js */")
        assert "console.log('hello');" in bundle
        assert "/shop/__hmr" in bundle

    def test_copy_steps_in_output(self, compiler):
        """Test that copy steps land under their target names."""
        compiler.run()
        output = compiler.output

        assert output["logo.svg"] == b"<svg/>"
        assert output["index.html"].startswith(b"<html>")
        assert sorted(output) == compiler.stats.assets

    def test_hash_changes_with_content(self, compiler, shop_config):
        """Test that the hash is stable for same input and changes on edits."""
        first = compiler.run().hash
        assert compiler.run().hash == first
        assert len(first) == 20

        with open(os.path.join(shop_config.context, "src", "main.js"), "a") as f:
            f.write("// edit\n")

        assert compiler.run().hash != first

    def test_missing_entry_is_error(self, compiler, shop_config):
        """Test that a missing entry is reported but a build is still emitted."""
        os.remove(os.path.join(shop_config.context, "src", "main.js"))

        stats = compiler.run()

        assert stats.has_errors
        assert "Module not found" in stats.errors[0]
        assert compiler.is_valid

    def test_missing_copy_source_is_warning(self, compiler, shop_config):
        """Test that a missing copy source only warns."""
        os.remove(os.path.join(shop_config.context, "assets", "logo.svg"))

        stats = compiler.run()

        assert not stats.has_errors
        assert stats.warnings == ["Copy source not found: assets/logo.svg"]
        assert "logo.svg" not in compiler.output

    def test_watch_rebuilds_on_change(self, compiler, shop_config):
        """Test that editing a source triggers a rebuild with a new hash."""
        builds = []
        compiler.add_done_listener(builds.append)
        first = compiler.run().hash
        compiler.watch()

        time.sleep(0.1)
        path = os.path.join(shop_config.context, "src", "main.js")
        with open(path, "w") as f:
            f.write("console.log('changed');\n")
        # Make sure the mtime moves even on coarse-grained filesystems.
        later = time.time() + 2
        os.utime(path, (later, later))

        assert wait_until(lambda: any(b.hash != first for b in builds), timeout=5.0)
        assert b"changed" in compiler.output["bundle.js"]

    def test_watch_is_idempotent(self, compiler):
        """Test that a second watch() does not start another thread."""
        compiler.watch()
        watcher = compiler._watcher
        compiler.watch()

        assert compiler._watcher is watcher

    def test_close_stops_watcher(self, compiler):
        """Test that close() joins the watcher thread."""
        compiler.run()
        compiler.watch()
        watcher = compiler._watcher

        compiler.close()
        compiler.close()

        assert compiler.closed
        assert not watcher.is_alive()

    def test_watch_after_close_is_noop(self, compiler):
        """Test that a closed compiler never starts watching."""
        compiler.close()
        compiler.watch()

        assert compiler._watcher is None


class TestBuildStats:
    """Tests for BuildStats."""

    def test_has_errors(self):
        """Test the errors flag."""
        assert not BuildStats(hash="x", time_ms=1.0).has_errors
        assert BuildStats(hash="x", time_ms=1.0, errors=["e"]).has_errors
