"""
Command-line entrypoint for baredeploy.

Every option can also be given through the environment variable named in its
help text, or through a YAML file passed with --config. Command-line values
win over the environment, which wins over the file.
"""

import logging
import sys
from typing import Optional

import click

from .config import RUNTIME_CHOICES, load_config
from .events import DeploymentRecord, Outcome, StageEvent, close_run_log, open_run_log
from .exceptions import DeployError
from .ids import new_run_id
from .orchestrator import SETTLE_SECONDS, DeploymentPipeline, DeploymentResult, TeardownPipeline, TeardownResult
from .redact import redact_string
from .state import get_run_log_path

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERNAL = 2
EXIT_INTERRUPTED = 130

_COLORS = {
    Outcome.INFO: "cyan",
    Outcome.SUCCESS: "green",
    Outcome.WARNING: "yellow",
    Outcome.ERROR: "red",
}


def _print_event_human(event: StageEvent) -> None:
    """Print one stage event to the console."""
    time_str = event.ts.strftime("%H:%M:%S")
    color = _COLORS.get(event.outcome, "white")
    click.echo(f"[{time_str}] {click.style(event.stage, fg=color)}: {event.message}")


def _print_deploy_summary(result: DeploymentResult, log_path) -> None:
    click.echo("")
    click.echo(f"✅ {result.app_id} deployed ({result.profile.describe()})")
    click.echo(f"🌐 Public URL: {click.style(result.public_url, fg='blue', underline=True)}")
    if result.warnings:
        click.echo(f"⚠️  {len(result.warnings)} warning(s):")
        for warning in result.warnings:
            click.echo(f"  - {warning}")
    click.echo(f"📄 Log: {log_path}")


def _print_teardown_summary(result: TeardownResult, log_path) -> None:
    click.echo("")
    click.echo(f"🧹 {result.app_id} torn down")
    for item in result.removed:
        click.echo(f"  - removed {item}")
    if result.warnings:
        click.echo(f"⚠️  {len(result.warnings)} warning(s), see the log for details")
    click.echo(f"📄 Log: {log_path}")


def _print_failure(error: DeployError, log_path) -> None:
    stage = error.stage or "Configuration"
    click.echo("", err=True)
    click.echo(f"❌ {click.style(stage, fg='red', bold=True)} failed: {error.message}", err=True)
    if error.hint:
        click.echo(f"   Hint: {error.hint}", err=True)
    click.echo(f"📄 Log: {log_path}", err=True)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--cleanup", is_flag=True, help="Tear down a previous deployment instead of deploying")
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="YAML file with deployment settings")
@click.option("--repo", envvar="GIT_URL", help="Git repository URL [env: GIT_URL]")
@click.option("--token", envvar="PAT", help="Access token for private https repositories [env: PAT]")
@click.option("--branch", envvar="BRANCH", help="Branch to deploy (default: main) [env: BRANCH]")
@click.option("--user", envvar="REMOTE_USER", help="Remote SSH user [env: REMOTE_USER]")
@click.option("--host", envvar="REMOTE_HOST", help="Remote host name or IP [env: REMOTE_HOST]")
@click.option("--key", envvar="SSH_KEY", help="Path to the SSH private key [env: SSH_KEY]")
@click.option("--port", envvar="APP_PORT", help="Port the application listens on [env: APP_PORT]")
@click.option("--project-dir", envvar="REMOTE_PROJECT_DIR",
              help="Remote project directory (default: /home/<user>/apps/<repo>) [env: REMOTE_PROJECT_DIR]")
@click.option("--runtime", envvar="APP_TYPE", type=click.Choice(RUNTIME_CHOICES),
              help="Runtime (default: auto) [env: APP_TYPE]")
@click.option("--runtime-version", envvar="RUNTIME_VERSION", help="Runtime version, e.g. 18 or 8.1 [env: RUNTIME_VERSION]")
@click.option("--ssh-port", envvar="SSH_PORT", help="Remote SSH port (default: 22) [env: SSH_PORT]")
@click.option("--settle", type=float, default=SETTLE_SECONDS, show_default=True,
              help="Seconds to wait before validating the deployment")
@click.option("--verbose", "-v", is_flag=True, help="Also print debug logs (remote commands and output) to stderr")
def main(
    cleanup: bool,
    config_file: Optional[str],
    repo: Optional[str],
    token: Optional[str],
    branch: Optional[str],
    user: Optional[str],
    host: Optional[str],
    key: Optional[str],
    port: Optional[str],
    project_dir: Optional[str],
    runtime: Optional[str],
    runtime_version: Optional[str],
    ssh_port: Optional[str],
    settle: float,
    verbose: bool,
):
    """
    baredeploy - deploy an application onto a bare Linux host over SSH.

    Detects the runtime (node, python, ruby, php, static), installs it, copies
    the source, installs dependencies, supervises the process with pm2 or
    systemd and puts nginx in front of it.
    """
    overrides = {
        "repo_url": repo,
        "access_token": token,
        "branch": branch,
        "remote_user": user,
        "remote_host": host,
        "ssh_key": key,
        "app_port": port,
        "project_dir": project_dir,
        "runtime": runtime,
        "runtime_version": runtime_version,
        "ssh_port": ssh_port,
    }

    run_id = new_run_id()
    log_path = get_run_log_path(run_id)
    handler = open_run_log(log_path)

    console_handler = None
    if verbose:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logging.getLogger("baredeploy").addHandler(console_handler)

    record = DeploymentRecord(run_id=run_id, listeners=[_print_event_human])
    exit_code = EXIT_OK
    try:
        config = load_config(config_file, overrides)
        if cleanup:
            logger.info(f"Teardown run {run_id} for {redact_string(config.repo_url, [config.access_token])}")
            teardown = TeardownPipeline(config, record=record).run()
            _print_teardown_summary(teardown, log_path)
        else:
            logger.info(f"Deployment run {run_id} for {redact_string(config.repo_url, [config.access_token])} ({config.branch})")
            result = DeploymentPipeline(config, record=record, settle_seconds=settle).run()
            _print_deploy_summary(result, log_path)
    except DeployError as e:
        logger.error(f"Run failed at {e.stage or 'configuration'}: {e.message}")
        _print_failure(e, log_path)
        exit_code = EXIT_FAILED
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        click.echo("\n🛑 Interrupted", err=True)
        exit_code = EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Unexpected error")
        click.echo(f"💥 Unexpected error: {e}", err=True)
        click.echo(f"📄 Log: {log_path}", err=True)
        exit_code = EXIT_INTERNAL
    finally:
        if console_handler is not None:
            logging.getLogger("baredeploy").removeHandler(console_handler)
        close_run_log(handler)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
