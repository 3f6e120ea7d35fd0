"""
Unit tests for project names and devhost.yaml loading.
"""

import pytest

from devhost.errors import ConfigurationError, ValidationError
from devhost.projects.build_config import (
    LIVE_RELOAD_CLIENT_ENTRY,
    CopyStep,
    WatchOptions,
    load_build_config,
)
from devhost.projects.names import mountable, sanitize


class TestSanitize:
    """Tests for sanitize()."""

    def test_plain_name_unchanged(self):
        """Test that a clean name passes through."""
        assert sanitize("shop") == "shop"

    def test_command_suffix_dropped(self):
        """Test that everything from the first ';' is removed."""
        assert sanitize("a;rm -rf /") == "a"

    def test_whitespace_replaced(self):
        """Test that every whitespace character becomes '_'."""
        assert sanitize("my project") == "my_project"
        assert sanitize("a\tb\nc") == "a_b_c"

    def test_idempotent(self):
        """Test that sanitizing twice changes nothing."""
        assert sanitize(sanitize("my app;x")) == "my_app"

    def test_empty_rejected(self):
        """Test that empty input is a ValidationError."""
        with pytest.raises(ValidationError):
            sanitize("")

    def test_empty_after_split_rejected(self):
        """Test that ';...' sanitizes to nothing and is rejected."""
        with pytest.raises(ValidationError):
            sanitize(";ls")

    @pytest.mark.parametrize("name", ["add", "remove", "projects", "export", "projects;x"])
    def test_admin_names_not_mountable(self, name):
        """Test that names of admin routes cannot be mounted."""
        assert sanitize(name)
        with pytest.raises(ValidationError):
            mountable(name)

    def test_mountable_sanitizes(self):
        """Test that mountable() returns the sanitized name."""
        assert mountable("my app;x") == "my_app"
        assert mountable("projects2") == "projects2"


class TestLoadBuildConfig:
    """Tests for load_build_config()."""

    def test_defaults_from_project(self, projects_dir, make_project):
        """Test the derived fields of a freshly loaded config."""
        make_project("shop")

        config = load_build_config(str(projects_dir), "shop")

        assert config.name == "shop"
        assert config.context == str(projects_dir / "shop")
        assert config.entry == [LIVE_RELOAD_CLIENT_ENTRY, "./src/main.js"]
        assert config.source_entries == ["./src/main.js"]
        assert config.output_filename == "bundle.js"
        assert config.output_path == "/shop"
        assert config.public_path == "/shop/"

    def test_plugins_get_index_copy(self, projects_dir, make_project):
        """Test that the index.html copy step is appended after configured ones."""
        make_project("shop")

        config = load_build_config(str(projects_dir), "shop")

        assert config.plugins == [
            CopyStep(source="assets/logo.svg", target="logo.svg"),
            CopyStep(source="index.html", target="index.html"),
        ]

    def test_fresh_config_per_project(self, projects_dir, make_project):
        """Test that two projects never share list objects."""
        make_project("shop")
        make_project("blog")

        shop = load_build_config(str(projects_dir), "shop")
        blog = load_build_config(str(projects_dir), "blog")

        assert shop.entry is not blog.entry
        assert shop.plugins is not blog.plugins
        assert blog.public_path == "/blog/"

    def test_entry_list_and_copy_default_target(self, projects_dir, make_project):
        """Test a list entry and a copy step without 'to'."""
        make_project("shop", yaml_text=(
            "entry:\n"
            "  - ./src/a.js\n"
            "  - ./src/b.js\n"
            "output:\n"
            "  filename: /app.js\n"
            "plugins:\n"
            "  - copy: {from: assets/logo.svg}\n"
        ))

        config = load_build_config(str(projects_dir), "shop")

        assert config.source_entries == ["./src/a.js", "./src/b.js"]
        assert config.output_filename == "app.js"
        assert config.plugins[0] == CopyStep("assets/logo.svg", "logo.svg")

    def test_watch_options(self, projects_dir, make_project):
        """Test YAML watch options override the defaults."""
        make_project("shop", yaml_text="entry: ./src/main.js\nwatch:\n  poll_interval: 0.5\n")

        config = load_build_config(
            str(projects_dir), "shop",
            watch_defaults=WatchOptions(aggregate_timeout=0.1, poll_interval=2.0),
        )

        assert config.watch.poll_interval == 0.5
        assert config.watch.aggregate_timeout == 0.1

    def test_watch_defaults_copied(self, projects_dir, make_project):
        """Test that the defaults object itself is not shared."""
        make_project("shop")
        defaults = WatchOptions()

        config = load_build_config(str(projects_dir), "shop", watch_defaults=defaults)

        assert config.watch == defaults
        assert config.watch is not defaults

    def test_custom_config_name(self, projects_dir, make_project):
        """Test loading from a different file name."""
        root = make_project("shop", yaml_text=None)
        (root / "build.yml").write_text("entry: ./src/main.js\n")

        assert load_build_config(str(projects_dir), "shop", config_name="build.yml").name == "shop"

    def test_missing_project_dir(self, projects_dir):
        """Test that an unknown project is a ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_build_config(str(projects_dir), "ghost")

        assert exc_info.value.project == "ghost"

    def test_missing_config_file(self, projects_dir, make_project):
        """Test that a project without devhost.yaml is a ConfigurationError."""
        make_project("shop", yaml_text=None)

        with pytest.raises(ConfigurationError):
            load_build_config(str(projects_dir), "shop")

    @pytest.mark.parametrize("yaml_text", [
        "entry: [unclosed\n",
        "- just\n- a list\n",
        "output: {filename: bundle.js}\n",
        "entry: []\n",
        "entry: ./a.js\noutput: nope\n",
        "entry: ./a.js\nplugins: {copy: x}\n",
        "entry: ./a.js\nplugins:\n  - minify: true\n",
        "entry: ./a.js\nwatch:\n  poll_interval: often\n",
    ])
    def test_invalid_configs(self, projects_dir, make_project, yaml_text):
        """Test that malformed YAML or wrong field shapes are rejected."""
        make_project("shop", yaml_text=yaml_text)

        with pytest.raises(ConfigurationError):
            load_build_config(str(projects_dir), "shop")
