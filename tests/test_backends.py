"""
Tests for web backends — nginx, apache, registry and staging.
"""

import os
from pathlib import Path

import pytest

from furnace.adapters.mock import FakeRunner
from furnace.adapters.registry import BackendRegistry, default_registry
from furnace.adapters.web.apache import ApacheBackend
from furnace.adapters.web.nginx import NginxBackend
from furnace.core.config.paths import FurnacePaths
from furnace.core.errors import ExternalToolError, NotFoundError, ResourceUnavailableError
from furnace.core.models.recipe import Recipe
from furnace.core.models.settings import FurnaceSettings

SOCKET = "/tmp/php-8.2.sock"


@pytest.fixture
def recipe(tmp_path: Path) -> Recipe:
    return Recipe(name="blog", path=str(tmp_path / "blog"), php_version="8.2")


@pytest.fixture
def nginx(paths: FurnacePaths, settings: FurnaceSettings, runner: FakeRunner) -> NginxBackend:
    return NginxBackend(paths, settings, runner)


def _mark_running(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(f"{os.getpid()}\n")


class TestNginxFiles:
    def test_write_conf_creates_directories(self, nginx: NginxBackend, recipe: Recipe, paths: FurnacePaths):
        path = nginx.write_conf(recipe, SOCKET)
        assert path == paths.nginx_servers_dir / "blog.conf"
        assert "server_name blog.test;" in path.read_text()
        assert paths.nginx_logs_dir.is_dir()

    def test_rewrite_identical_is_noop(self, nginx: NginxBackend, recipe: Recipe):
        path = nginx.write_conf(recipe, SOCKET)
        mtime = path.stat().st_mtime_ns
        nginx.apply()
        nginx.write_conf(recipe, SOCKET)
        assert path.stat().st_mtime_ns == mtime
        assert nginx.pending_changes == []

    def test_remove_conf_idempotent(self, nginx: NginxBackend, recipe: Recipe):
        nginx.write_conf(recipe, SOCKET)
        assert nginx.remove_conf("blog") is True
        assert nginx.remove_conf("blog") is False
        assert not nginx.conf_path("blog").exists()

    def test_main_conf_includes_servers(self, nginx: NginxBackend):
        path = nginx.ensure_main_conf()
        text = path.read_text()
        assert "include servers/*.conf;" in text
        assert f"pid {nginx.pid_file};" in text
        assert "include /etc/nginx/mime.types;" in text

    def test_main_conf_not_overwritten(self, nginx: NginxBackend):
        nginx.main_conf.parent.mkdir(parents=True)
        nginx.main_conf.write_text("# mine\n")
        nginx.ensure_main_conf()
        assert nginx.main_conf.read_text() == "# mine\n"


class TestNginxLifecycle:
    def test_detect_installed(self, paths, settings):
        assert NginxBackend(paths, settings, FakeRunner(available={"nginx"})).detect_installed()
        assert not NginxBackend(paths, settings, FakeRunner()).detect_installed()

    def test_validate_uses_private_prefix(self, nginx: NginxBackend, runner: FakeRunner, paths: FurnacePaths):
        nginx.validate()
        assert runner.calls[-1] == [
            "nginx", "-p", str(paths.nginx_dir), "-c", str(paths.nginx_dir / "nginx.conf"), "-t",
        ]

    def test_apply_starts_when_stopped(self, nginx: NginxBackend, runner: FakeRunner, recipe: Recipe):
        nginx.write_conf(recipe, SOCKET)
        assert nginx.apply() == "started"
        assert runner.calls[-1][-1] == str(nginx.main_conf)

    def test_apply_reloads_when_running(self, nginx: NginxBackend, runner: FakeRunner, recipe: Recipe):
        _mark_running(nginx.pid_file)
        nginx.write_conf(recipe, SOCKET)
        assert nginx.apply() == "reloaded"
        assert runner.calls[-1][-2:] == ["-s", "reload"]

    def test_failed_validation_restores_new_file(self, nginx: NginxBackend, runner: FakeRunner, recipe: Recipe):
        runner.respond(nginx._args("-t"), return_code=1, stderr='nginx: [emerg] unknown directive "sever"')
        nginx.write_conf(recipe, SOCKET)

        with pytest.raises(ExternalToolError) as exc:
            nginx.apply()

        assert exc.value.output == 'nginx: [emerg] unknown directive "sever"'
        assert not nginx.conf_path("blog").exists()
        assert not runner.called("-s")
        assert len(runner.calls) == 1

    def test_failed_validation_restores_previous_content(
        self, nginx: NginxBackend, runner: FakeRunner, recipe: Recipe
    ):
        _mark_running(nginx.pid_file)
        path = nginx.write_conf(recipe, SOCKET)
        nginx.apply()
        before = path.read_text()

        runner.respond(nginx._args("-t"), return_code=1, stderr="broken")
        nginx.write_conf(recipe.model_copy(update={"site": "changed.test"}), SOCKET)
        with pytest.raises(ExternalToolError):
            nginx.apply()

        assert path.read_text() == before
        assert runner.called("reload") == [nginx._args("-s", "reload")]

    def test_failed_validation_keeps_removed_file_gone(
        self, nginx: NginxBackend, runner: FakeRunner, recipe: Recipe
    ):
        _mark_running(nginx.pid_file)
        nginx.write_conf(recipe, SOCKET)
        nginx.apply()

        runner.respond(nginx._args("-t"), return_code=1, stderr="broken")
        nginx.remove_conf("blog")
        with pytest.raises(ExternalToolError):
            nginx.apply()

        assert not nginx.conf_path("blog").exists()
        assert nginx.pending_changes == []

    def test_reload_refused_on_invalid_config(self, nginx: NginxBackend, runner: FakeRunner):
        runner.respond(nginx._args("-t"), return_code=1, stderr="bad")
        with pytest.raises(ExternalToolError):
            nginx.reload()
        assert not runner.called("reload")

    def test_port_conflict_on_start(self, nginx: NginxBackend, runner: FakeRunner):
        runner.respond(nginx._args("-t"))
        runner.respond(
            nginx._args(),
            return_code=1,
            stderr="nginx: [emerg] bind() to 0.0.0.0:8080 failed (98: Address already in use)",
        )
        with pytest.raises(ResourceUnavailableError) as exc:
            nginx.apply()
        assert "8080" in exc.value.message

    def test_stop_when_not_running(self, nginx: NginxBackend, runner: FakeRunner):
        assert nginx.stop() is False
        assert runner.calls == []

    def test_stop_removes_stale_pid_file(self, nginx: NginxBackend):
        nginx.pid_file.parent.mkdir(parents=True)
        nginx.pid_file.write_text("999999999\n")
        assert nginx.stop() is False
        assert not nginx.pid_file.exists()

    def test_stop_sends_quit(self, nginx: NginxBackend, runner: FakeRunner):
        _mark_running(nginx.pid_file)
        assert nginx.stop() is True
        assert runner.calls[-1][-2:] == ["-s", "quit"]


class TestApache:
    @pytest.fixture
    def apache(self, paths: FurnacePaths, tmp_path: Path, runner: FakeRunner) -> ApacheBackend:
        sites = tmp_path / "sites-enabled"
        sites.mkdir()
        settings = FurnaceSettings(
            apache_ctl="apachectl",
            apache_sites_enabled=str(sites),
            apache_pid_file=str(tmp_path / "httpd.pid"),
            stop_grace=0,
        )
        return ApacheBackend(paths, settings, runner)

    def test_write_conf_enables_site(self, apache: ApacheBackend, recipe: Recipe, paths: FurnacePaths):
        path = apache.write_conf(recipe, SOCKET)
        assert path == paths.apache_dir / "blog.conf"
        link = apache.link_path("blog")
        assert link.name == "furnace-blog.conf"
        assert link.is_symlink()
        assert link.resolve() == path.resolve()

    def test_remove_conf_disables_site(self, apache: ApacheBackend, recipe: Recipe):
        apache.write_conf(recipe, SOCKET)
        apache.remove_conf("blog")
        assert not apache.link_path("blog").is_symlink()
        assert not apache.conf_path("blog").exists()

    def test_configtest_failure_rolls_back(self, apache: ApacheBackend, runner: FakeRunner, recipe: Recipe):
        runner.respond(["apachectl", "configtest"], return_code=1, stderr="Syntax error on line 3")
        apache.write_conf(recipe, SOCKET)
        with pytest.raises(ExternalToolError) as exc:
            apache.apply()
        assert exc.value.output == "Syntax error on line 3"
        assert not apache.conf_path("blog").exists()
        assert not apache.link_path("blog").is_symlink()

    def test_apply_starts_then_reloads(self, apache: ApacheBackend, runner: FakeRunner, recipe: Recipe, tmp_path: Path):
        apache.write_conf(recipe, SOCKET)
        assert apache.apply() == "started"
        assert runner.calls[-1] == ["apachectl", "start"]

        _mark_running(tmp_path / "httpd.pid")
        assert apache.apply() == "reloaded"
        assert runner.calls[-1] == ["apachectl", "graceful"]

    def test_ctl_with_arguments(self, paths: FurnacePaths, runner: FakeRunner):
        apache = ApacheBackend(paths, FurnaceSettings(apache_ctl="sudo apachectl"), runner)
        apache.validate()
        assert runner.calls[-1] == ["sudo", "apachectl", "configtest"]
        assert apache.binary == "sudo"


class TestRegistry:
    def test_default_registry(self, paths, settings, runner):
        registry = default_registry(paths, settings, runner)
        assert registry.kinds() == ["nginx", "apache"]
        assert "nginx" in registry

    def test_unknown_kind(self):
        with pytest.raises(NotFoundError):
            BackendRegistry().get("caddy")

    def test_backend_status(self, paths, settings, runner):
        status = default_registry(paths, settings, runner).backend_status()
        assert status["nginx"] == {"installed": True, "running": False}
        assert status["apache"]["installed"] is False
