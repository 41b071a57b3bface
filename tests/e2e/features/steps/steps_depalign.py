from behave import given, when, then
import json
import os
import shutil
import subprocess
import sys
import tempfile
import uuid
from pathlib import Path

def find_project_root(start: Path) -> Path:
    cur = start
    for _ in range(10):
        if (cur / "pyproject.toml").exists():
            return cur
        cur = cur.parent
    # Fallback: features/steps -> features -> e2e -> tests -> root
    return start.parents[4]

PROJECT_ROOT = find_project_root(Path(__file__).resolve())
ARTIFACTS = PROJECT_ROOT / "tests" / "e2e" / "artifacts"

def _ensure_artifacts():
    ARTIFACTS.mkdir(parents=True, exist_ok=True)
    return ARTIFACTS

def _unique_name(prefix, ext):
    return f"{prefix}-{uuid.uuid4().hex[:8]}.{ext}"

def _resolve_placeholder(val, context):
    # Map placeholders to generated paths (idempotent within a scenario)
    if val == "<json_path>":
        if getattr(context, "json_path", None):
            return context.json_path
        context.json_path = str(_ensure_artifacts() / _unique_name("out", "json"))
        return context.json_path
    if val == "<request>":
        return getattr(context, "request_path")
    return val

def _load_output(context, path_key):
    path = _resolve_placeholder(path_key, context)
    return json.loads(Path(path).read_text(encoding="utf-8"))

@given("a clean artifacts directory")
def step_clean_artifacts(context):
    if ARTIFACTS.exists():
        for p in ARTIFACTS.iterdir():
            if p.is_file():
                p.unlink()
            elif p.is_dir():
                shutil.rmtree(p)
    _ensure_artifacts()
    context.json_path = None

@given("a request document:")
def step_request_document(context):
    tmp_dir = Path(tempfile.mkdtemp(prefix="depalign-"))
    path = tmp_dir / "request.yml"
    path.write_text(context.text, encoding="utf-8")
    context.request_path = str(path)

@when("I run depalign with arguments:")
def step_run_depalign(context):
    args = []
    input_given = False

    for row in context.table:
        arg = row["arg"].strip()
        val = row["value"].strip()
        if arg in ("-i", "--input"):
            input_given = True
        # Interpret boolean flags passed as "true"
        if val.lower() == "true":
            args.append(arg)
        else:
            args.extend([arg, _resolve_placeholder(val, context)])

    if not input_given and getattr(context, "request_path", None):
        args = ["-i", context.request_path] + args

    cmd = [sys.executable, "-m", "depalign", "resolve"] + args

    env = os.environ.copy()
    env["PYTHONPATH"] = f"{PROJECT_ROOT / 'src'}" + os.pathsep + env.get("PYTHONPATH", "")
    env.pop("DEPALIGN_CONFIG", None)

    proc = subprocess.run(
        cmd,
        cwd=str(_ensure_artifacts()),
        text=True,
        capture_output=True,
        env=env,
    )
    context.proc = proc

@then("the process exits with code {code:d}")
def step_exit_code(context, code):
    assert context.proc.returncode == code, f"Expected {code}, got {context.proc.returncode}\nSTDOUT:\n{context.proc.stdout}\nSTDERR:\n{context.proc.stderr}"

@then('stderr contains "{text}"')
def step_stderr_contains(context, text):
    assert text in context.proc.stderr, f"Expected {text!r} in stderr, got:\n{context.proc.stderr}"

@then('the JSON output at "{path_key}" resolves "{configuration}" with:')
def step_json_resolved(context, path_key, configuration):
    data = _load_output(context, path_key)
    record = data["configurations"].get(configuration)
    assert record is not None, f"No outcome for {configuration} in {data}"
    resolved = record.get("resolved", {})
    for row in context.table:
        module = row["module"].strip()
        expected = row["version"].strip()
        assert resolved.get(module) == expected, f"{module} expected {expected}, got {resolved.get(module)}"

@then('the JSON output at "{path_key}" reports "{kind}" for "{configuration}"')
def step_json_issue(context, path_key, configuration, kind):
    data = _load_output(context, path_key)
    record = data["configurations"].get(configuration)
    assert record is not None, f"No outcome for {configuration} in {data}"
    issues = (record.get("error") or {}).get("issues", [])
    kinds = [issue.get("kind") for issue in issues]
    assert kind in kinds, f"Expected {kind} in {kinds}"
