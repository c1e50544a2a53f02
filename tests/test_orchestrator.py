"""
End-to-end pipeline scenarios against the in-memory host.
"""

import json

import pytest

from baredeploy.analyzer import RuntimeKind
from baredeploy.events import DeploymentRecord, Outcome
from baredeploy.exceptions import (
    ConfigurationError,
    ProvisioningFailure,
    RemoteUnreachable,
    ValidationFailure,
)
from baredeploy.orchestrator import DEPLOY_STAGES, TRANSFER_EXCLUDES, DeploymentPipeline, Stage
from baredeploy.proxy import site_available_path
from baredeploy.recipes.smoke import SmokeTestResult

from conftest import FakeHost, make_config, no_tools_check, syncer_for, write_files


def reachable_probe(url):
    return SmokeTestResult(True, f"{url} answered 200")


def unreachable_probe(url):
    return SmokeTestResult(False, f"Request to {url} failed: timed out")


@pytest.fixture(autouse=True)
def no_probe_sleep(monkeypatch):
    monkeypatch.setattr("baredeploy.recipes.smoke.time.sleep", lambda s: None)


def pipeline(host, working_copy, public_probe=reachable_probe, **config):
    return DeploymentPipeline(
        make_config(**config),
        executor=host,
        syncer=syncer_for(working_copy),
        public_probe=public_probe,
        settle_seconds=0,
        tool_checker=no_tools_check,
    )


def stage_order(record: DeploymentRecord):
    seen = []
    for stage in record.stages():
        if stage not in seen:
            seen.append(stage)
    return seen


class TestNodeDeployment:
    """Auto-detected Node.js app on a fresh apt host."""

    def test_runs_every_stage_to_done(self, fake_host, node_app):
        result = pipeline(fake_host, node_app).run()

        assert result.profile.kind == RuntimeKind.NODE
        assert result.public_url == "http://203.0.113.10/"
        assert result.commit == "abc1234"
        assert stage_order(result.record) == [s.value for s in DEPLOY_STAGES]
        assert result.record.events[-1].stage == Stage.DONE.value
        assert not result.record.stages(Outcome.ERROR)

    def test_host_ends_up_serving_the_app(self, fake_host, node_app):
        pipeline(fake_host, node_app).run()

        assert {"nginx", "node", "npm", "pm2"} <= fake_host.binaries
        assert fake_host.nginx_active
        assert fake_host.pm2["shop"]["status"] == "online"
        assert fake_host.pm2["shop"]["command"] == "npm start"
        assert fake_host.pm2["shop"]["env"]["PORT"] == "3000"
        assert "proxy_pass http://127.0.0.1:3000;" in fake_host.files[site_available_path()]
        assert "/etc/nginx/ssl/README" in fake_host.files
        assert fake_host.syncs == [(str(node_app), "/home/deploy/apps/shop", TRANSFER_EXCLUDES)]
        assert fake_host.ran("npm ci --production")

    def test_install_happens_before_transfer_and_proxy_after_start(self, fake_host, node_app):
        pipeline(fake_host, node_app).run()

        assert fake_host.index_of("apt-get install -y nginx") < fake_host.index_of("apt-get install -y nodejs")
        assert fake_host.index_of("apt-get install -y nodejs") < fake_host.index_of("npm ci")
        assert fake_host.index_of("pm2 restart shop") < fake_host.index_of("tee /etc/nginx/sites-available")

    def test_second_run_converges(self, fake_host, node_app):
        pipeline(fake_host, node_app).run()
        second = pipeline(fake_host, node_app).run()

        assert list(fake_host.pm2) == ["shop"]
        assert fake_host.count("apt-get install -y nginx") == 1
        assert fake_host.count("apt-get install -y nodejs") == 1
        assert any("already installed" in e.message for e in second.record.events)

    def test_yum_host(self, node_app):
        host = FakeHost(package_manager="yum")
        pipeline(host, node_app).run()
        assert host.ran("sudo yum install -y nginx")
        assert host.ran("rpm.nodesource.com/setup_18.x")


class TestOtherRuntimes:
    def test_python_app_runs_under_systemd(self, fake_host, python_app):
        result = pipeline(fake_host, python_app, app_port=5000).run()

        assert result.profile.kind == RuntimeKind.PYTHON
        unit = fake_host.files["/etc/systemd/system/shop.service"]
        assert 'ExecStart=/bin/bash -c "./venv/bin/python app.py"' in unit
        assert "/home/deploy/apps/shop/venv/bin" in unit
        assert fake_host.units["shop"] == {"enabled": True, "active": True}
        assert fake_host.ran("./venv/bin/pip install -r requirements.txt")
        assert not fake_host.pm2

    def test_static_site_has_no_supervisor(self, fake_host, static_app):
        result = pipeline(fake_host, static_app, app_port=8080).run()

        assert result.profile.kind == RuntimeKind.STATIC
        site = fake_host.files[site_available_path()]
        assert "root /home/deploy/apps/shop;" in site
        assert not fake_host.pm2
        assert not fake_host.units
        assert not fake_host.ran("curl -s -o /dev/null")
        assert result.record.events[-1].stage == Stage.DONE.value

    def test_unrecognized_app_is_proxied_with_warning(self, fake_host, tmp_path):
        root = write_files(tmp_path / "odd", {"main.go": "package main"})
        result = pipeline(fake_host, root).run()

        assert result.profile.kind == RuntimeKind.OTHER
        assert any("manually" in w for w in result.warnings)
        assert "proxy_pass http://127.0.0.1:3000;" in fake_host.files[site_available_path()]

    def test_explicit_runtime_and_version(self, fake_host, tmp_path):
        root = write_files(tmp_path / "php", {"index.php": "<?php", "package.json": "{}"})
        result = pipeline(fake_host, root, runtime="php", runtime_version="8.2", app_port=8080).run()

        assert result.profile.kind == RuntimeKind.PHP
        assert fake_host.ran("php8.2-fpm")
        assert "php -S 0.0.0.0:8080 -t ." in fake_host.files["/etc/systemd/system/shop.service"]

    def test_python_app_without_manifest_gets_venv(self, fake_host, tmp_path):
        root = write_files(tmp_path / "bare", {"main.py": "print('hi')"})
        result = pipeline(fake_host, root, runtime="python", app_port=8000).run()

        assert result.profile.kind == RuntimeKind.PYTHON
        assert fake_host.ran("python3 -m venv venv")
        assert fake_host.index_of("python3 -m venv venv") < fake_host.index_of("systemctl restart shop")
        assert 'bash -c "./venv/bin/python main.py"' in fake_host.files["/etc/systemd/system/shop.service"]


class TestFailures:
    def test_missing_host_fails_before_remote_contact(self, fake_host, node_app):
        with pytest.raises(ConfigurationError) as excinfo:
            pipeline(fake_host, node_app, remote_host="").run()
        assert excinfo.value.stage == Stage.VALIDATE_CONFIG.value
        assert fake_host.commands == []

    def test_bad_port_fails_validation(self, fake_host, node_app):
        with pytest.raises(ConfigurationError):
            pipeline(fake_host, node_app, app_port="80a").run()
        assert fake_host.commands == []

    def test_ssh_auth_failure(self, node_app):
        host = FakeHost(reachable=False)
        host.unreachable_output = "deploy@203.0.113.10: Permission denied (publickey)."
        p = pipeline(host, node_app)

        with pytest.raises(RemoteUnreachable) as excinfo:
            p.run()

        assert excinfo.value.stage == Stage.CHECK_REMOTE_REACHABLE.value
        assert "key" in excinfo.value.hint
        assert host.commands == ["echo connected"]
        assert p.record.events[-1].outcome == Outcome.ERROR

    def test_internal_probe_failure_is_fatal(self, fake_host, node_app):
        fake_host.loopback_code = "000"
        probed = []

        def probe(url):
            probed.append(url)
            return reachable_probe(url)

        with pytest.raises(ValidationFailure) as excinfo:
            pipeline(fake_host, node_app, public_probe=probe).run()

        assert excinfo.value.stage == Stage.VALIDATE_DEPLOYMENT.value
        assert probed == []

    def test_server_error_from_app_is_fatal(self, fake_host, node_app):
        fake_host.loopback_code = "502"
        with pytest.raises(ValidationFailure):
            pipeline(fake_host, node_app).run()

    def test_not_found_from_app_counts_as_healthy(self, fake_host, node_app):
        fake_host.loopback_code = "404"
        result = pipeline(fake_host, node_app).run()
        assert result.record.events[-1].stage == Stage.DONE.value

    def test_external_probe_failure_is_a_warning(self, fake_host, node_app):
        result = pipeline(fake_host, node_app, public_probe=unreachable_probe).run()

        assert result.record.events[-1].stage == Stage.DONE.value
        assert any("timed out" in w for w in result.warnings)

    def test_crashing_app_fails_validation(self, fake_host, node_app):
        fake_host.app_crashes = True
        with pytest.raises(ValidationFailure) as excinfo:
            pipeline(fake_host, node_app).run()
        assert "inactive" in excinfo.value.message

    def test_no_start_command_is_fatal(self, fake_host, tmp_path):
        root = write_files(tmp_path / "lib", {"package.json": json.dumps({"name": "lib"})})
        with pytest.raises(ProvisioningFailure) as excinfo:
            pipeline(fake_host, root).run()
        assert excinfo.value.stage == Stage.REGISTER_SUPERVISOR.value
        assert not fake_host.pm2

    def test_no_package_manager(self, node_app):
        host = FakeHost(package_manager=None)
        with pytest.raises(ProvisioningFailure) as excinfo:
            pipeline(host, node_app).run()
        assert excinfo.value.stage == Stage.INSTALL_PROXY_RUNTIME.value

    def test_dependency_failure_stops_pipeline(self, fake_host, node_app):
        fake_host.fail_on("npm ci", output="npm ERR! code ERESOLVE")
        with pytest.raises(ProvisioningFailure) as excinfo:
            pipeline(fake_host, node_app).run()
        assert excinfo.value.stage == Stage.INSTALL_DEPENDENCIES.value
        assert "ERESOLVE" in excinfo.value.message
        assert not fake_host.ran("pm2 start")

    def test_transfer_failure(self, fake_host, node_app):
        fake_host.sync_exit_code = 12
        with pytest.raises(ProvisioningFailure) as excinfo:
            pipeline(fake_host, node_app).run()
        assert excinfo.value.stage == Stage.TRANSFER_PROJECT.value

    def test_tls_placeholder_is_best_effort(self, fake_host, node_app):
        fake_host.fail_on("mkdir -p /etc/nginx/ssl", output="read-only file system")
        result = pipeline(fake_host, node_app).run()

        assert Stage.PREPARE_TLS_PLACEHOLDER.value in result.record.stages(Outcome.WARNING)
        assert result.record.events[-1].stage == Stage.DONE.value

    def test_invalid_nginx_config_never_reloads(self, fake_host, node_app):
        real_interpret = fake_host._interpret

        def interpret(command, input_text):
            # nginx is valid until the managed site is written
            if command == "sudo nginx -t" and site_available_path() in fake_host.files:
                return 1, "nginx: [emerg] unexpected end of file"
            return real_interpret(command, input_text)

        fake_host._interpret = interpret
        with pytest.raises(ProvisioningFailure) as excinfo:
            pipeline(fake_host, node_app).run()

        assert excinfo.value.stage == Stage.CONFIGURE_PROXY.value
        assert not fake_host.ran("systemctl reload nginx")
