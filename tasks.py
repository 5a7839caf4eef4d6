from pathlib import Path
from invoke import task
import botocore
import shutil
import os
import json
from collections import Counter
from dotenv import load_dotenv


load_dotenv()


APP_NAME = "deploy-prune"
VERSION = os.getenv("VERSION", "0.1.0")
BUILD_DIR = Path(os.getenv("BUILD_DIR", "dist"))
BIN_NAME = APP_NAME


def _echo(ctx, cmd: str) -> None:
    ctx.run(cmd, echo=True)


def _analyze_bandit_report(report_path: Path) -> bool:
    """Print a summary of a Bandit JSON report. Returns True if no HIGH findings."""
    if not report_path.exists():
        print(f"⚠️ Bandit report not generated at {report_path}")
        return True

    with open(report_path, "r", encoding="utf-8") as f:
        results = json.load(f).get("results", [])

    print("\n📊 Bandit Security Analysis:")
    if not results:
        print("   ✅ No security issues found!")
        return True

    severity_counts = Counter(r.get("issue_severity", "UNDEFINED") for r in results)
    print(f"   🔍 Total findings: {len(results)}")
    for severity in ["HIGH", "MEDIUM", "LOW"]:
        count = severity_counts.get(severity, 0)
        if count > 0:
            print(f"   {severity.capitalize()}: {count}")

    test_counts = Counter(r.get("test_name", "unknown") for r in results)
    print("   📋 Top issues:")
    for test_name, count in test_counts.most_common(5):
        print(f"      • {test_name}: {count}")

    return severity_counts.get("HIGH", 0) == 0


@task
def clean(ctx):
    if BUILD_DIR.exists():
        shutil.rmtree(BUILD_DIR)


@task(help={"pattern": "Only run tests matching this -k expression"})
def test(ctx, pattern: str = ""):
    """Run the pytest suite."""
    selector = f"-k '{pattern}'" if pattern else ""
    _echo(ctx, f"python3 -m pytest {selector}".strip())


@task
def security_scan(ctx):
    """Run Bandit over the package and fail on HIGH severity findings."""
    print("\n🛡️  Running security scan...")
    reports_dir = BUILD_DIR / "security"
    reports_dir.mkdir(parents=True, exist_ok=True)
    report_path = reports_dir / "bandit.json"

    # Bandit exits non-zero when it finds anything, the report decides.
    ctx.run(
        f"python3 -m bandit -r deploy_prune -f json -o {report_path}",
        pty=True,
        warn=True,
    )
    if not _analyze_bandit_report(report_path):
        raise SystemExit("Security scan failed - critical issues found!")
    print("✅ Security scan completed successfully.")


@task(
    help={
        "distdir": "Output directory (default: dist)",
    }
)
def build_bin(ctx, distdir: str = "dist"):
    botocore_path = botocore.__path__[0]
    data_path = Path(botocore_path) / "data"
    add_data_arg = f'--add-data "{data_path}{os.pathsep}botocore/data"'
    _echo(
        ctx,
        f"python3 -m PyInstaller -F -n {BIN_NAME} main.py --distpath {distdir} {add_data_arg}",
    )


@task(pre=[clean])
def build(ctx):
    """Build the wheel into the build directory."""
    _echo(ctx, f"python3 -m pip wheel . --no-deps -w {BUILD_DIR}")
