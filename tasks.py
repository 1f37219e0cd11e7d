# type: ignore
import os

from invoke import task

DEMO_CSV = "cam_id,rtsp,simulated\nsim-1,rtsp://192.0.2.50/stream1,yes\n"


@task
def venv(ctx):
    """Create the development environment with uv."""
    ctx.run("uv sync --extra test --extra dev")


@task
def lint(ctx):
    """Run ruff and mypy over the sources."""
    ctx.run("ruff check src tests", pty=True)
    ctx.run("ruff format --check src tests", pty=True)
    ctx.run("mypy src", pty=True)


@task
def test(ctx):
    """Run tests with coverage information."""
    ctx.run("pytest --cov=camfleet --cov-report=term-missing", pty=True)


@task
def demo(ctx, data_dir="/tmp/camfleet-demo"):
    """Run a batch against a simulated camera in a throwaway data directory."""
    config = os.path.join(data_dir, "config.toml")
    env = {"CAMFLEET_CONFIG": config}
    os.makedirs(data_dir, exist_ok=True)
    with open(os.path.join(data_dir, "cameras.csv"), "w") as handle:
        handle.write(DEMO_CSV)
    if not os.path.exists(config):
        ctx.run(f"camfleet init --data-dir {data_dir}", env=env)
    ctx.run(f"camfleet devices import {data_dir}/cameras.csv", env=env)
    ctx.run("camfleet apply --all --width 1920 --height 1080 --fps 25", env=env)


@task
def build_package(ctx):
    """Build package using uv."""
    ctx.run("rm -rf dist")
    ctx.run("uv build")
