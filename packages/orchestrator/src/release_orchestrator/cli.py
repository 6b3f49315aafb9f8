from __future__ import annotations

import argparse
import signal
from dataclasses import dataclass
from pathlib import Path

from release_orchestrator.core import (
    CancelToken,
    ConfigError,
    ReleaseError,
    Settings,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from release_orchestrator.pipeline import StageFn
from release_orchestrator.project import LoadedProject, load_project
from release_orchestrator.release import (
    COMMAND_STAGES,
    PipelineRun,
    ReleaseComponents,
    ReleasePipeline,
    target_from_settings,
)
from release_orchestrator.stages.publish import SecretProvider, provider_from_settings
from release_orchestrator.stages.tag import resolve_revision
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

PROG = "release-orchestrator"


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    config_dir: str | None
    revision: str | None
    identifier: str | None
    services: list[str] | None
    host: str | None
    remote_dir: str | None


def _add_common_args(p: argparse.ArgumentParser, *, deploy: bool = False) -> None:
    p.add_argument(
        "--config-dir",
        default=None,
        help=(
            "Directory containing release.json and the compose template. "
            "If omitted: uses RELEASE_CONFIG_DIR or ./config."
        ),
    )
    p.add_argument(
        "--service",
        action="append",
        dest="services",
        help="Only act on this service (repeatable). If omitted, uses every service in release.json.",
    )
    if deploy:
        p.add_argument(
            "--identifier",
            required=True,
            help="Identifier of an earlier publish to deploy (e.g. abc123def456)",
        )
    else:
        p.add_argument(
            "--revision",
            default=None,
            help="Source revision to release. Defaults to `git rev-parse HEAD` of the source root.",
        )
    p.add_argument("--host", default=None, help="Override RELEASE_TARGET_HOST")
    p.add_argument("--remote-dir", default=None, help="Override RELEASE_TARGET_REMOTE_DIR")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=PROG)
    sub = p.add_subparsers(dest="cmd", required=True)

    commands: dict[str, str] = {
        "tag": "Derive the artifact identifier for a revision",
        "build": "Build images for every service",
        "publish": "Build and publish images to the registry",
        "run": "Run the complete release: tag, build, publish, deploy",
        "deploy": "Redeploy an identifier published by an earlier run",
    }

    for cmd, help_text in commands.items():
        sp = sub.add_parser(cmd, help=help_text)
        _add_common_args(sp, deploy=(cmd == "deploy"))

    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    return _CommonArgs(
        cmd=str(args.cmd),
        config_dir=(str(args.config_dir) if args.config_dir else None),
        revision=getattr(args, "revision", None),
        identifier=getattr(args, "identifier", None),
        services=list(args.services) if args.services else None,
        host=args.host,
        remote_dir=args.remote_dir,
    )


def _with_status(stage_id: str, fn: StageFn) -> StageFn:
    def _run_with_status(ctx):
        with console.status(f"[bold]{stage_id}[/]", spinner="dots"):
            return fn(ctx)

    return _run_with_status


def _install_cancel_handlers(cancel: CancelToken) -> dict[int, object]:
    def _handler(signum, _frame) -> None:
        name = signal.Signals(signum).name
        console.print(f"[yellow]{name} received; stopping after the current step[/yellow]")
        cancel.cancel(f"{name} received")

    previous: dict[int, object] = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def _settings_with_overrides(s: Settings, common: _CommonArgs) -> Settings:
    updates: dict[str, object] = {}
    if common.host:
        updates["target_host"] = common.host
    if common.remote_dir:
        updates["target_remote_dir"] = common.remote_dir
    return s.model_copy(update=updates) if updates else s


def _secrets_for(cmd: str, s: Settings) -> SecretProvider | None:
    if cmd in ("publish", "run"):
        return provider_from_settings(s)
    if cmd == "deploy" and s.registry_username:
        return provider_from_settings(s)
    return None


def _revision_for(common: _CommonArgs, loaded: LoadedProject) -> str:
    if common.cmd == "deploy":
        assert common.identifier is not None
        return common.identifier
    if common.revision:
        return common.revision
    return resolve_revision(loaded.source_root)


def _result_table(run: PipelineRun) -> Table:
    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row("status", "[green]ok[/green]" if run.ok else "[red]failed[/red]")
    tbl.add_row("identifier", run.identifier or "-")
    if run.failure is not None:
        tbl.add_row("failure", str(run.failure))
        tbl.add_row("error", run.failure.message)
    for p in run.published:
        tbl.add_row(p.service, p.registry_ref)
    if run.descriptor_sha256:
        tbl.add_row("descriptor", run.descriptor_sha256)
    if run.deploy is not None:
        tbl.add_row("target", run.deploy.target_key)
    tbl.add_row("report", str(run.report_json))
    return tbl


def _release(common: _CommonArgs, s: Settings, run_id: str, cancel: CancelToken) -> PipelineRun:
    loaded = load_project(Path(common.config_dir) if common.config_dir else s.config_dir)
    revision = _revision_for(common, loaded)
    bind(revision=revision)

    target = target_from_settings(s)
    if target is None and common.cmd in ("run", "deploy"):
        raise ConfigError("No deployment target: set RELEASE_TARGET_HOST or pass --host")

    pipeline = ReleasePipeline(
        loaded=loaded,
        components=ReleaseComponents.from_settings(s, loaded=loaded, target=target),
        runs_root=Path(s.runs_root),
        max_workers=s.max_workers,
        logger=get_logger("release_orchestrator"),
    )

    console.print(
        Panel.fit(
            Text(
                f"{PROG} - {common.cmd}\nrun_id={run_id}\nproject={loaded.project.project}\nrevision={revision}"
                + (f"\ntarget={target.target_key}" if target is not None else ""),
                style="bold",
            ),
            title="Run",
        )
    )

    try:
        return pipeline.execute(
            COMMAND_STAGES[common.cmd],
            revision=revision,
            services=common.services,
            secrets=_secrets_for(common.cmd, s),
            run_id=run_id,
            cancel=cancel,
            extra_meta=({"identifier": common.identifier, "redeploy": True} if common.cmd == "deploy" else None),
            wrap=_with_status,
        )
    finally:
        pipeline.components.publisher.close()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    common = _common(args)

    s = _settings_with_overrides(load_settings(), common)
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("release_orchestrator")

    run_id = new_run_id()
    bind(run_id=run_id, command=common.cmd)

    cancel = CancelToken()
    previous = _install_cancel_handlers(cancel)

    try:
        run = _release(common, s, run_id, cancel)
    except ReleaseError as e:
        log.error("Release could not start", exc_type=type(e).__name__, error=str(e))
        console.print(Panel.fit(Text(str(e), style="bold red"), title=type(e).__name__))
        return 1
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)
        clear_bindings()

    console.print(
        Panel.fit(
            Text(run.summary(), style="bold green" if run.ok else "bold red"),
            title="Release succeeded" if run.ok else "Release failed",
        )
    )
    console.print(_result_table(run))

    return run.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
