"""
Tests for the reconciler — serve, stop, restart, dispose.

Backends are MockBackends writing real files under tmp_path; php-fpm
runs through the FakeRunner, which marks a pool's socket alive on start.
"""

from pathlib import Path

from furnace.adapters.mock import FakeProbe, FakeRunner, MockBackend
from furnace.core.context import FurnaceContext
from furnace.core.engine.reconciler import ReconcileReport
from furnace.core.models.receipt import Receipt
from furnace.core.models.recipe import Recipe
from furnace.core.use_cases.cook import cook
from furnace.core.use_cases.php import use_php

from conftest import install_fake_runtime, make_project


def _put(ctx: FurnaceContext, tmp_path: Path, name: str, **fields) -> Recipe:
    project = make_project(tmp_path, name)
    return ctx.store.put(Recipe(name=name, path=str(project), **fields))


class TestReport:
    def test_status(self):
        report = ReconcileReport(operation="serve")
        assert report.ok and report.status == "ok"
        report.add(Receipt.success("php", "8.2", "start"))
        report.add(Receipt.failure("nginx", "nginx", "apply", "boom"))
        assert not report.ok
        assert report.status == "partial"
        assert [r.resource for r in report.errors] == ["nginx"]
        data = report.to_dict()
        assert data["failed"] == 1 and data["succeeded"] == 1
        assert data["receipts"][1]["error"] == "boom"


class TestServe:
    def test_serves_recipe(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "blog", php_version="8.2")

        report = ctx.reconciler.serve()

        assert report.ok, report.to_dict()
        assert ctx.runtimes.is_running("8.2")
        conf = nginx_mock.conf_path("blog").read_text()
        assert f"unix:{ctx.runtimes.socket_path('8.2')};" in conf
        assert nginx_mock.running
        assert nginx_mock.count("validate") == 1

    def test_each_backend_applied_once(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend, apache_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        install_fake_runtime(ctx.paths, "8.3")
        _put(ctx, tmp_path, "a", php_version="8.2")
        _put(ctx, tmp_path, "b", php_version="8.3")
        _put(ctx, tmp_path, "c", php_version="8.2", serve_with="apache")

        report = ctx.reconciler.serve()

        assert report.ok
        assert nginx_mock.count("validate") == 1
        assert apache_mock.count("validate") == 1
        assert nginx_mock.conf_path("a").exists() and nginx_mock.conf_path("b").exists()
        assert apache_mock.conf_path("c").exists()
        assert not nginx_mock.conf_path("c").exists()

    def test_runtime_starts_once_per_version(self, ctx: FurnaceContext, tmp_path: Path, runner: FakeRunner):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "a", php_version="8.2")
        _put(ctx, tmp_path, "b", php_version="8.2")
        ctx.reconciler.serve()
        assert len(runner.called("--fpm-config")) == 1

    def test_second_serve_is_stable(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "blog", php_version="8.2")
        ctx.reconciler.serve()
        before = nginx_mock.conf_path("blog").read_text()

        report = ctx.reconciler.serve()

        assert report.ok
        assert nginx_mock.conf_path("blog").read_text() == before
        assert nginx_mock.count("start") == 1
        assert nginx_mock.count("reload") == 1

    def test_missing_runtime_skips_recipe_only(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "good", php_version="8.2")
        _put(ctx, tmp_path, "bad", php_version="8.3")

        report = ctx.reconciler.serve()

        assert not report.ok
        failure = report.errors[0]
        assert failure.resource == "8.3"
        assert failure.error_kind == "not_found"
        assert "8.3" in failure.error
        assert [r.status for r in report.for_resource("bad")] == ["skipped"]
        assert nginx_mock.conf_path("good").exists()
        assert not nginx_mock.conf_path("bad").exists()
        assert nginx_mock.running

    def test_unknown_version_renders_sentinel(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        _put(ctx, tmp_path, "legacy")
        report = ctx.reconciler.serve()
        assert report.ok
        assert "/tmp/furnace-php-unresolved.sock" in nginx_mock.conf_path("legacy").read_text()

    def test_backend_not_installed_is_skipped(self, ctx: FurnaceContext, tmp_path: Path, apache_mock: MockBackend):
        apache_mock.installed = False
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "site", php_version="8.2", serve_with="apache")

        report = ctx.reconciler.serve()

        assert report.ok
        assert report.skipped == 1
        assert not apache_mock.conf_path("site").exists()
        assert apache_mock.calls == []

    def test_validation_failure_keeps_previous_file(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        install_fake_runtime(ctx.paths, "8.3")
        recipe = _put(ctx, tmp_path, "blog", php_version="8.2")
        ctx.reconciler.serve()
        before = nginx_mock.conf_path("blog").read_text()

        ctx.store.put(recipe.model_copy(update={"php_version": "8.3"}))
        nginx_mock.fail_validation('nginx: [emerg] unexpected "}"')
        report = ctx.reconciler.serve()

        assert not report.ok
        apply_failure = [r for r in report.errors if r.step == "apply"][0]
        assert apply_failure.tool_output == 'nginx: [emerg] unexpected "}"'
        assert nginx_mock.conf_path("blog").read_text() == before
        assert nginx_mock.count("reload") == 0

    def test_switching_backend_drops_old_config(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend, apache_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        recipe = _put(ctx, tmp_path, "blog", php_version="8.2")
        _put(ctx, tmp_path, "shop", php_version="8.2")
        ctx.reconciler.serve()

        ctx.store.put(recipe.model_copy(update={"serve_with": "apache"}))
        report = ctx.reconciler.serve(["blog"])

        assert report.ok, report.to_dict()
        assert apache_mock.conf_path("blog").exists()
        assert not nginx_mock.conf_path("blog").exists()
        assert nginx_mock.conf_path("shop").exists()
        assert nginx_mock.count("reload") == 1
        assert apache_mock.running

    def test_switch_leaves_stopped_backend_stopped(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend, apache_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        recipe = _put(ctx, tmp_path, "blog", php_version="8.2")
        nginx_mock.write_conf(recipe, ctx.runtimes.socket_path("8.2"))

        ctx.store.put(recipe.model_copy(update={"serve_with": "apache"}))
        ctx.reconciler.serve()

        assert not nginx_mock.conf_path("blog").exists()
        assert nginx_mock.calls == []
        assert nginx_mock.pending_changes == []

    def test_serve_named_subset(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "a", php_version="8.2")
        _put(ctx, tmp_path, "b", php_version="8.2")
        ctx.reconciler.serve(["a"])
        assert nginx_mock.conf_path("a").exists()
        assert not nginx_mock.conf_path("b").exists()

    def test_serve_unknown_name(self, ctx: FurnaceContext):
        report = ctx.reconciler.serve(["ghost"])
        assert not report.ok
        assert report.errors[0].resource == "ghost"

    def test_start_failure_is_captured(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        from furnace.core.errors import ResourceUnavailableError

        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "blog", php_version="8.2")
        nginx_mock.start_error = ResourceUnavailableError("port 8080 is already in use", resource="nginx")

        report = ctx.reconciler.serve()

        assert report.errors[0].error_kind == "resource_unavailable"


class TestStop:
    def test_empty_stop(self, ctx: FurnaceContext):
        report = ctx.reconciler.stop()
        assert report.ok
        assert all(r.output == "not running" for r in report.receipts)

    def test_stop_backends_and_runtimes(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "blog", php_version="8.2")
        ctx.reconciler.serve()

        report = ctx.reconciler.stop()

        assert report.ok
        assert not nginx_mock.running
        assert [r.resource for r in report.receipts if r.component == "php"] == ["8.2"]

    def test_stop_is_idempotent(self, ctx: FurnaceContext):
        assert ctx.reconciler.stop().ok
        assert ctx.reconciler.stop().ok

    def test_restart(self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend):
        install_fake_runtime(ctx.paths, "8.2")
        _put(ctx, tmp_path, "blog", php_version="8.2")
        ctx.reconciler.serve()

        report = ctx.reconciler.restart()

        assert report.ok
        assert report.operation == "restart"
        assert nginx_mock.count("stop") == 1
        assert nginx_mock.count("start") == 2
        assert nginx_mock.running


class TestDispose:
    def test_dispose_removes_everything(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        project = make_project(tmp_path, "blog")
        result = cook(ctx, project, php="8.2")

        report = ctx.reconciler.dispose("blog")

        assert report.ok
        assert ctx.store.get("blog") is None
        assert not nginx_mock.conf_path("blog").exists()
        assert not (project / ".furnace.recipe.yml").is_symlink()
        assert nginx_mock.count("reload") == 1
        assert result.recipe.name == "blog"

    def test_dispose_removes_configs_on_every_backend(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend, apache_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        recipe = _put(ctx, tmp_path, "blog", php_version="8.2")
        socket = ctx.runtimes.socket_path("8.2")
        nginx_mock.write_conf(recipe, socket)
        apache_mock.write_conf(recipe.model_copy(update={"serve_with": "apache"}), socket)

        report = ctx.reconciler.dispose("blog")

        assert report.ok
        assert not nginx_mock.conf_path("blog").exists()
        assert not apache_mock.conf_path("blog").exists()
        assert sorted(r.component for r in report.receipts if r.output == "removed") == [
            "apache",
            "nginx",
            "recipe",
        ]

    def test_dispose_validation_failure_keeps_config_removed(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend
    ):
        install_fake_runtime(ctx.paths, "8.2")
        project = make_project(tmp_path, "blog")
        cook(ctx, project, php="8.2")
        nginx_mock.fail_validation("nginx: [emerg] broken include")

        report = ctx.reconciler.dispose("blog")

        assert not report.ok
        assert report.errors[0].step == "apply"
        assert report.errors[0].tool_output == "nginx: [emerg] broken include"
        assert ctx.store.get("blog") is None
        assert not nginx_mock.conf_path("blog").exists()
        assert nginx_mock.count("reload") == 0

    def test_dispose_missing_is_noop(self, ctx: FurnaceContext, nginx_mock: MockBackend):
        report = ctx.reconciler.dispose("ghost")
        assert report.ok
        assert nginx_mock.calls == []

    def test_dispose_stopped_backend_not_applied(
        self, ctx: FurnaceContext, tmp_path: Path, nginx_mock: MockBackend
    ):
        _put(ctx, tmp_path, "blog")
        nginx_mock.write_conf(ctx.store.get("blog"), None)
        ctx.reconciler.dispose("blog")
        assert nginx_mock.calls == []


class TestEndToEnd:
    def test_cook_serve_switch_php(
        self,
        ctx: FurnaceContext,
        tmp_path: Path,
        nginx_mock: MockBackend,
        probe: FakeProbe,
    ):
        install_fake_runtime(ctx.paths, "8.2")
        install_fake_runtime(ctx.paths, "8.3")
        project = make_project(tmp_path, "blog")
        neighbour = make_project(tmp_path, "shop")

        cooked = cook(ctx, project, php="8.2")
        assert cooked.ok, cooked.report.to_dict()
        assert cooked.recipe.site == "blog.test"
        assert cook(ctx, neighbour, php="8.2").ok

        sock_82 = ctx.runtimes.socket_path("8.2")
        assert f"unix:{sock_82};" in nginx_mock.conf_path("blog").read_text()
        assert nginx_mock.running
        assert ctx.runtimes.is_running("8.2")
        reloads = nginx_mock.count("reload")
        shop_conf = nginx_mock.conf_path("shop").read_bytes()
        shop_mtime = nginx_mock.conf_path("shop").stat().st_mtime_ns

        switched = use_php(ctx, project, "8.3")

        assert switched.ok
        assert ctx.store.get("blog").php_version == "8.3"
        sock_83 = ctx.runtimes.socket_path("8.3")
        conf = nginx_mock.conf_path("blog").read_text()
        assert f"unix:{sock_83};" in conf
        assert str(sock_82) not in conf
        assert ctx.runtimes.is_running("8.3")
        assert nginx_mock.count("reload") == reloads + 1
        assert str(sock_83) in probe.alive
        assert nginx_mock.conf_path("shop").read_bytes() == shop_conf
        assert nginx_mock.conf_path("shop").stat().st_mtime_ns == shop_mtime
        assert ctx.store.get("shop").php_version == "8.2"
