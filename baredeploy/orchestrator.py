"""
Deployment and teardown pipelines.

A deployment runs a fixed sequence of stages against one remote host. Every
stage is fatal on failure except the TLS placeholder. There is no automatic
rollback: re-running converges because every stage replaces what it finds, and
``TeardownPipeline`` removes everything a deployment creates.
"""

import logging
import os
import shlex
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type

from .analyzer import RuntimeKind, RuntimeProfile, classify
from .config import DeploymentConfig
from .events import DeploymentRecord
from .exceptions import DeployError, ProvisioningFailure, RemoteUnreachable, ValidationFailure
from .fetcher import check_local_tools, sync_local_repo
from .ids import new_run_id
from .proxy import ProxyConfigurator, install_plan as proxy_install_plan, render as render_site
from .recipes import InstallPlan, ProvisioningActions, actions_for
from .recipes.smoke import SmokeTestResult, probe_loopback, probe_public_url
from .remote import RemoteExecutor, RemoteSession, SSHExecutor
from .state import get_workspace_dir
from .supervisor import ALL_VARIANTS, RunningState, Supervisor, supervisor_class

logger = logging.getLogger(__name__)

# Never copied to the host.
TRANSFER_EXCLUDES = (".git", "node_modules", "__pycache__", ".venv", ".env")

SETTLE_SECONDS = 5


class Stage(str, Enum):
    VALIDATE_CONFIG = "ValidateConfig"
    CHECK_LOCAL_TOOLS = "CheckLocalTools"
    SYNC_LOCAL_REPO = "SyncLocalRepo"
    CLASSIFY_RUNTIME = "ClassifyRuntime"
    CHECK_REMOTE_REACHABLE = "CheckRemoteReachable"
    INSTALL_PROXY_RUNTIME = "InstallProxyRuntime"
    INSTALL_APP_RUNTIME = "InstallAppRuntime"
    PREPARE_TLS_PLACEHOLDER = "PrepareTlsPlaceholder"
    TRANSFER_PROJECT = "TransferProject"
    INSTALL_DEPENDENCIES = "InstallDependencies"
    REGISTER_SUPERVISOR = "RegisterSupervisor"
    START_APPLICATION = "StartApplication"
    CONFIGURE_PROXY = "ConfigureProxy"
    VALIDATE_DEPLOYMENT = "ValidateDeployment"
    # teardown
    STOP_APPLICATION = "StopApplication"
    REMOVE_SUPERVISOR = "RemoveSupervisor"
    REMOVE_PROXY_SITE = "RemoveProxySite"
    REMOVE_PROJECT_DIR = "RemoveProjectDir"
    DONE = "Done"


DEPLOY_STAGES = [
    Stage.CHECK_LOCAL_TOOLS,
    Stage.SYNC_LOCAL_REPO,
    Stage.CLASSIFY_RUNTIME,
    Stage.CHECK_REMOTE_REACHABLE,
    Stage.INSTALL_PROXY_RUNTIME,
    Stage.INSTALL_APP_RUNTIME,
    Stage.PREPARE_TLS_PLACEHOLDER,
    Stage.TRANSFER_PROJECT,
    Stage.INSTALL_DEPENDENCIES,
    Stage.REGISTER_SUPERVISOR,
    Stage.START_APPLICATION,
    Stage.CONFIGURE_PROXY,
    Stage.VALIDATE_DEPLOYMENT,
    Stage.DONE,
]

TEARDOWN_STAGES = [
    Stage.CHECK_LOCAL_TOOLS,
    Stage.CLASSIFY_RUNTIME,
    Stage.CHECK_REMOTE_REACHABLE,
    Stage.STOP_APPLICATION,
    Stage.REMOVE_SUPERVISOR,
    Stage.REMOVE_PROXY_SITE,
    Stage.REMOVE_PROJECT_DIR,
    Stage.DONE,
]

Syncer = Callable[[DeploymentConfig, Path], Tuple[Path, str]]
PublicProbe = Callable[[str], SmokeTestResult]
ToolChecker = Callable[..., List[str]]


def default_syncer(config: DeploymentConfig, dest: Path) -> Tuple[Path, str]:
    return sync_local_repo(config.repo_url, config.branch, dest, token=config.access_token)


@dataclass
class DeploymentResult:
    app_id: str
    profile: RuntimeProfile
    public_url: str
    record: DeploymentRecord
    commit: Optional[str] = None

    @property
    def warnings(self) -> List[str]:
        return self.record.warnings


@dataclass
class TeardownResult:
    app_id: str
    record: DeploymentRecord
    removed: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return self.record.warnings


def session_for(config: DeploymentConfig) -> RemoteSession:
    return RemoteSession(
        host=config.remote_host,
        user=config.remote_user,
        key_path=os.path.expanduser(config.ssh_key),
        ssh_port=int(config.ssh_port),
    )


class _Pipeline:
    """Stage bookkeeping shared by deployment and teardown."""

    def __init__(
        self,
        config: DeploymentConfig,
        executor: Optional[RemoteExecutor] = None,
        record: Optional[DeploymentRecord] = None,
        workspace_dir: Optional[Path] = None,
        tool_checker: ToolChecker = check_local_tools,
    ):
        self.config = config
        self._executor = executor
        self.record = record or DeploymentRecord(run_id=new_run_id())
        self._workspace_dir = workspace_dir
        self.tool_checker = tool_checker
        self.current_stage: Optional[Stage] = None

    @property
    def executor(self) -> RemoteExecutor:
        if self._executor is None:
            self._executor = SSHExecutor(session_for(self.config))
        return self._executor

    @property
    def workspace_dir(self) -> Path:
        if self._workspace_dir is None:
            self._workspace_dir = get_workspace_dir(self.config.repo_name)
        return self._workspace_dir

    @contextmanager
    def _stage(self, stage: Stage) -> Iterator[None]:
        """Tag fatal errors raised inside with the stage and record them."""
        self.current_stage = stage
        try:
            yield
        except DeployError as e:
            if e.stage is None:
                e.stage = stage.value
            self.record.error(stage.value, e.message)
            raise

    @contextmanager
    def _best_effort(self, stage: Stage) -> Iterator[None]:
        """Downgrade fatal errors raised inside to warnings."""
        self.current_stage = stage
        try:
            yield
        except DeployError as e:
            self.record.warning(stage.value, f"{e.message} (continuing)")

    def _validate_config(self) -> None:
        with self._stage(Stage.VALIDATE_CONFIG):
            self.config.validate()

    def _check_reachable(self) -> None:
        with self._stage(Stage.CHECK_REMOTE_REACHABLE):
            session = self.executor.session
            result = self.executor.ping()
            if result.ok and "connected" in result.output:
                self.record.success(Stage.CHECK_REMOTE_REACHABLE.value, f"Connected to {session.target}")
                return

            text = result.output.lower()
            if "permission denied" in text or "publickey" in text:
                hint = "check the SSH key and that its public half is in the remote authorized_keys"
            elif "could not resolve" in text or "name or service not known" in text:
                hint = "check the remote host name"
            else:
                hint = "check that the host is up and sshd listens on the configured port"
            detail = result.tail(3) or f"exit code {result.exit_code}"
            raise RemoteUnreachable(f"Cannot reach {session.target}: {detail}", hint=hint)


class DeploymentPipeline(_Pipeline):
    """Deploys one application onto one host."""

    def __init__(
        self,
        config: DeploymentConfig,
        executor: Optional[RemoteExecutor] = None,
        record: Optional[DeploymentRecord] = None,
        workspace_dir: Optional[Path] = None,
        syncer: Syncer = default_syncer,
        public_probe: PublicProbe = probe_public_url,
        settle_seconds: float = SETTLE_SECONDS,
        tool_checker: ToolChecker = check_local_tools,
    ):
        super().__init__(config, executor, record, workspace_dir, tool_checker)
        self.syncer = syncer
        self.public_probe = public_probe
        self.settle_seconds = settle_seconds
        self._package_manager: Optional[str] = None
        self._package_manager_checked = False

    def run(self) -> DeploymentResult:
        """
        Execute every stage in order.

        Returns:
            DeploymentResult with the runtime, public URL and event record

        Raises:
            DeployError: From the first stage that fails, tagged with that stage
        """
        self._validate_config()
        config = self.config
        port = config.port
        project_dir = config.remote_project_dir

        with self._stage(Stage.CHECK_LOCAL_TOOLS):
            tools = self.tool_checker()
            self.record.success(Stage.CHECK_LOCAL_TOOLS.value, f"Local tools available: {', '.join(tools) or 'n/a'}")

        with self._stage(Stage.SYNC_LOCAL_REPO):
            working_copy, commit = self.syncer(config, self.workspace_dir)
            self.record.success(Stage.SYNC_LOCAL_REPO.value, f"Working copy at {working_copy} ({config.branch} @ {commit})")

        with self._stage(Stage.CLASSIFY_RUNTIME):
            profile = classify(config.runtime, working_copy, config.runtime_version)
            actions = actions_for(profile, project_root=working_copy, port=port, app_id=config.app_id)
            self.record.success(Stage.CLASSIFY_RUNTIME.value, f"Runtime: {profile.describe()}")
            for note in actions.notes:
                self.record.warning(Stage.CLASSIFY_RUNTIME.value, note)

        self._check_reachable()
        proxy = ProxyConfigurator(self.executor)

        with self._stage(Stage.INSTALL_PROXY_RUNTIME):
            self._ensure_installed(proxy_install_plan(), Stage.INSTALL_PROXY_RUNTIME)
            self.executor.check("sudo systemctl enable --now nginx", what="starting nginx")

        with self._stage(Stage.INSTALL_APP_RUNTIME):
            if actions.install_packages is None:
                self.record.info(Stage.INSTALL_APP_RUNTIME.value, f"Nothing to install for {profile.kind.value}")
            else:
                self._ensure_installed(actions.install_packages, Stage.INSTALL_APP_RUNTIME)

        with self._best_effort(Stage.PREPARE_TLS_PLACEHOLDER):
            if proxy.prepare_tls_placeholder():
                self.record.success(Stage.PREPARE_TLS_PLACEHOLDER.value, "Created /etc/nginx/ssl with certbot instructions")
            else:
                self.record.info(Stage.PREPARE_TLS_PLACEHOLDER.value, "TLS placeholder already present")

        with self._stage(Stage.TRANSFER_PROJECT):
            self._transfer(working_copy, project_dir)

        with self._stage(Stage.INSTALL_DEPENDENCIES):
            self._install_dependencies(actions, project_dir)

        supervisor = actions.supervisor(self.executor) if actions.supervisor else None

        with self._stage(Stage.REGISTER_SUPERVISOR):
            self._register(profile, actions, supervisor, project_dir, port)

        with self._stage(Stage.START_APPLICATION):
            if supervisor is None:
                self.record.info(Stage.START_APPLICATION.value, "No supervised process for this runtime")
            else:
                supervisor.start(config.app_id)
                self.record.success(Stage.START_APPLICATION.value, f"{config.app_id} started under {supervisor.name}")

        with self._stage(Stage.CONFIGURE_PROXY):
            if profile.kind == RuntimeKind.STATIC:
                self._open_static_root(project_dir)
            proxy.install(render_site(profile, port, project_dir))
            proxy.reload()
            self.record.success(Stage.CONFIGURE_PROXY.value, "nginx site installed and reloaded")

        public_url = f"http://{config.remote_host}/"
        with self._stage(Stage.VALIDATE_DEPLOYMENT):
            self._validate(profile, proxy, supervisor, port, public_url)

        self.record.success(Stage.DONE.value, f"{config.app_id} deployed: {public_url}")
        return DeploymentResult(
            app_id=config.app_id,
            profile=profile,
            public_url=public_url,
            record=self.record,
            commit=commit,
        )

    def package_manager(self) -> Optional[str]:
        if not self._package_manager_checked:
            self._package_manager = self.executor.detect_package_manager()
            self._package_manager_checked = True
        return self._package_manager

    def _installed_version(self, plan: InstallPlan) -> str:
        if not plan.version_command:
            return ""
        result = self.executor.run(plan.version_command)
        lines = result.output.strip().splitlines() if result.ok else []
        return f" ({lines[0].strip()})" if lines else ""

    def _ensure_installed(self, plan: InstallPlan, stage: Stage) -> None:
        if self.executor.run(plan.probe_command).ok:
            self.record.success(stage.value, f"{plan.binary} already installed{self._installed_version(plan)}")
            return

        manager = self.package_manager()
        steps = plan.steps_for(manager)
        if not steps:
            raise ProvisioningFailure(
                f"Cannot install {plan.binary}: no supported package manager on the host",
                hint="baredeploy supports apt-get and yum based distributions",
            )

        self.record.info(stage.value, f"Installing {plan.binary} with {manager}")
        self.executor.run_script(steps, what=f"{plan.binary} install")

        if not self.executor.run(plan.probe_command).ok:
            raise ProvisioningFailure(f"{plan.binary} is still missing after installation")
        self.record.success(stage.value, f"{plan.binary} installed{self._installed_version(plan)}")

    def _transfer(self, working_copy: Path, project_dir: str) -> None:
        quoted = shlex.quote(project_dir)
        self.executor.check(
            f'sudo mkdir -p {quoted} && sudo chown -R "$(id -un)":"$(id -gn)" {quoted}',
            what=f"preparing {project_dir}",
        )
        result = self.executor.sync_directory(str(working_copy), project_dir, TRANSFER_EXCLUDES)
        if not result.ok:
            raise ProvisioningFailure(f"Source transfer failed with exit code {result.exit_code}\n{result.tail()}".rstrip())
        self.record.success(Stage.TRANSFER_PROJECT.value, f"Source transferred to {project_dir}")

    def _install_dependencies(self, actions: ProvisioningActions, project_dir: str) -> None:
        if not actions.install_dependencies:
            self.record.info(Stage.INSTALL_DEPENDENCIES.value, "No dependency manifest, nothing to install")
            return
        for step in actions.install_dependencies:
            self.record.info(Stage.INSTALL_DEPENDENCIES.value, step)
            self.executor.check(step, cwd=project_dir, what="dependency install")
        self.record.success(Stage.INSTALL_DEPENDENCIES.value, "Dependencies installed")

    def _register(
        self,
        profile: RuntimeProfile,
        actions: ProvisioningActions,
        supervisor: Optional[Supervisor],
        project_dir: str,
        port: int,
    ) -> None:
        stage = Stage.REGISTER_SUPERVISOR.value
        if supervisor is None:
            if profile.kind == RuntimeKind.OTHER:
                self.record.warning(stage, f"Start the application manually so it listens on port {port}")
            else:
                self.record.info(stage, "Static site, served directly by nginx")
            return

        start = actions.start_command
        if not start.runnable:
            raise ProvisioningFailure(
                f"No start command could be derived for this {profile.kind.value} application",
                hint="add a Procfile with a 'web:' entry (or a package.json start script)",
            )

        self.record.info(stage, f"Start command: {start.command} (from {start.source})")
        supervisor.register(self.config.app_id, start.command, project_dir, env=self._app_env(profile, project_dir, port))
        self.record.success(stage, f"{self.config.app_id} registered with {supervisor.name}")

    @staticmethod
    def _app_env(profile: RuntimeProfile, project_dir: str, port: int) -> Dict[str, str]:
        env = {"PORT": str(port)}
        if profile.kind == RuntimeKind.NODE:
            env["NODE_ENV"] = "production"
        elif profile.kind == RuntimeKind.PYTHON:
            env["PATH"] = f"{project_dir}/venv/bin:/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
        return env

    def _open_static_root(self, project_dir: str) -> None:
        """Let the nginx worker traverse to and read the static root."""
        parents = [str(p) for p in reversed(Path(project_dir).parents) if str(p) != "/"]
        command = f"sudo chmod -R o+rX {shlex.quote(project_dir)}"
        if parents:
            command += " && sudo chmod o+x " + " ".join(shlex.quote(p) for p in parents)
        if not self.executor.run(command).ok:
            self.record.warning(Stage.CONFIGURE_PROXY.value, f"Could not open permissions on {project_dir}; nginx may answer 403")

    def _validate(
        self,
        profile: RuntimeProfile,
        proxy: ProxyConfigurator,
        supervisor: Optional[Supervisor],
        port: int,
        public_url: str,
    ) -> None:
        stage = Stage.VALIDATE_DEPLOYMENT.value
        if self.settle_seconds:
            logger.debug(f"Waiting {self.settle_seconds}s for services to settle")
            time.sleep(self.settle_seconds)

        if not proxy.is_active():
            raise ValidationFailure("nginx is not running")
        if not proxy.validate():
            raise ValidationFailure("nginx configuration test failed")
        self.record.success(stage, "nginx active, configuration valid")

        if supervisor is not None:
            state = supervisor.status(self.config.app_id)
            if state != RunningState.ACTIVE:
                raise ValidationFailure(
                    f"{self.config.app_id} is {state.value} under {supervisor.name}",
                    hint="inspect the application logs on the host (pm2 logs / journalctl -u <app>)",
                )
            self.record.success(stage, f"{self.config.app_id} is active under {supervisor.name}")

        if profile.supervised:
            loopback = probe_loopback(self.executor, port)
            if not loopback:
                raise ValidationFailure(loopback.message, hint=f"the application must listen on port {port}")
            self.record.success(stage, loopback.message)

        external = self.public_probe(public_url)
        if external:
            self.record.success(stage, external.message)
        else:
            self.record.warning(stage, f"{external.message}; check the firewall/security group for port 80")


class TeardownPipeline(_Pipeline):
    """Removes everything a deployment of the same config created."""

    def run(self) -> TeardownResult:
        """
        Raises:
            DeployError: Only for invalid config, missing ssh, or an unreachable host
        """
        self._validate_config()
        config = self.config
        result = TeardownResult(app_id=config.app_id, record=self.record)

        with self._stage(Stage.CHECK_LOCAL_TOOLS):
            tools = self.tool_checker(required=("ssh",), transfer=False)
            self.record.success(Stage.CHECK_LOCAL_TOOLS.value, f"Local tools available: {', '.join(tools) or 'n/a'}")

        with self._stage(Stage.CLASSIFY_RUNTIME):
            profile = self._classify()
            self.record.info(Stage.CLASSIFY_RUNTIME.value, f"Runtime: {profile.describe()}")

        self._check_reachable()

        variants = self._supervisor_variants(profile)
        with self._best_effort(Stage.STOP_APPLICATION):
            for cls in variants:
                cls(self.executor).stop(config.app_id)
            if variants:
                self.record.success(Stage.STOP_APPLICATION.value, f"{config.app_id} stopped")
            else:
                self.record.info(Stage.STOP_APPLICATION.value, "No supervised process for this runtime")

        with self._best_effort(Stage.REMOVE_SUPERVISOR):
            for cls in variants:
                for command in cls.teardown_commands(config.app_id):
                    outcome = self.executor.run(command)
                    if not outcome.ok:
                        logger.info(f"'{command}' exited {outcome.exit_code} (already removed?)")
                result.removed.append(f"{cls.name}:{config.app_id}")
            if variants:
                self.record.success(Stage.REMOVE_SUPERVISOR.value, f"Removed {config.app_id} from {', '.join(c.name for c in variants)}")

        with self._best_effort(Stage.REMOVE_PROXY_SITE):
            proxy = ProxyConfigurator(self.executor)
            if proxy.remove():
                self.record.success(Stage.REMOVE_PROXY_SITE.value, "nginx site removed and nginx reloaded")
            else:
                self.record.warning(Stage.REMOVE_PROXY_SITE.value, "nginx site removed but nginx was not reloaded")
            result.removed.append("nginx-site")

        with self._best_effort(Stage.REMOVE_PROJECT_DIR):
            project_dir = config.remote_project_dir
            if not self._safe_to_remove(project_dir):
                self.record.warning(Stage.REMOVE_PROJECT_DIR.value, f"Refusing to delete {project_dir}")
            else:
                outcome = self.executor.run(f"sudo rm -rf {shlex.quote(project_dir)}")
                if outcome.ok:
                    result.removed.append(project_dir)
                    self.record.success(Stage.REMOVE_PROJECT_DIR.value, f"Removed {project_dir}")
                else:
                    self.record.warning(Stage.REMOVE_PROJECT_DIR.value, f"Could not remove {project_dir}: {outcome.tail(3)}")

        self.record.success(Stage.DONE.value, f"{config.app_id} torn down")
        return result

    def _classify(self) -> RuntimeProfile:
        workspace = self._workspace_dir
        if workspace is None:
            try:
                workspace = get_workspace_dir(self.config.repo_name)
            except ValueError:
                workspace = None
        root = workspace if workspace is not None and workspace.is_dir() else None
        return classify(self.config.runtime, root, self.config.runtime_version)

    @staticmethod
    def _supervisor_variants(profile: RuntimeProfile) -> List[Type[Supervisor]]:
        cls = supervisor_class(profile.kind)
        if cls is not None:
            return [cls]
        if profile.kind == RuntimeKind.OTHER:
            # runtime unknown locally: clean up after either variant
            return list(ALL_VARIANTS)
        return []

    def _safe_to_remove(self, project_dir: str) -> bool:
        path = Path(project_dir)
        protected = {Path("/"), Path("/home"), Path("/root"), Path(self.executor.session.home)}
        return path.is_absolute() and path not in protected and len(path.parts) > 2
