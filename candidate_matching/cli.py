import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _run_steps(steps: list[tuple[str, list[str]]]) -> None:
    for label, cmd in steps:
        print(f"  {label}...")
        subprocess.run(cmd, check=True)


def local_dev():
    """Start the Dagster UI and daemon against the local .env."""
    os.chdir(PROJECT_ROOT)
    os.environ.setdefault("DAGSTER_HOME", str(PROJECT_ROOT))
    os.execvp(
        sys.executable,
        [sys.executable, "-m", "dagster", "dev", "-m", "candidate_matching.definitions"]
        + sys.argv[1:],
    )


def migrate():
    """Apply pending Alembic migrations (matches, job and candidate profile tables)."""
    os.chdir(PROJECT_ROOT)
    _run_steps([("Running migrations", ["alembic", "upgrade", "head"])])


def match_manager():
    """Run one manager's matching locally: match-manager <manager_user_id> [--top-k N]."""
    os.chdir(PROJECT_ROOT)
    script = PROJECT_ROOT / "scripts" / "run_manager_matching.py"
    os.execvp(sys.executable, [sys.executable, str(script)] + sys.argv[1:])


def deploy():
    """Pull latest code, install, migrate, restart Dagster services, refill the index."""
    os.chdir(PROJECT_ROOT)

    _run_steps(
        [
            ("Pulling latest code", ["git", "pull"]),
            ("Installing package", [sys.executable, "-m", "pip", "install", "-e", "."]),
            ("Running migrations", ["alembic", "upgrade", "head"]),
            ("Restarting dagster-code", ["systemctl", "restart", "dagster-code"]),
            ("Restarting dagster-daemon", ["systemctl", "restart", "dagster-daemon"]),
        ]
    )

    if os.getenv("QDRANT_URL"):
        # New embedding model or collection: re-seed before the next scheduled run.
        _run_steps(
            [
                (
                    "Syncing candidate index",
                    [sys.executable, str(PROJECT_ROOT / "scripts" / "backfill_index.py")],
                )
            ]
        )

    print()
    print("Deploy complete. Checking service status...")
    subprocess.run(["systemctl", "status", "dagster-code", "dagster-daemon", "--no-pager"])
