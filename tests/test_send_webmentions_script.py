import os
import subprocess
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def run_script(*args):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(PROJECT_ROOT / "src"), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(PROJECT_ROOT / "scripts" / "send_webmentions.py"), *args],
        capture_output=True,
        text=True,
        check=False,
        env=env,
    )


def test_dry_run_lists_current_and_removed_links(tmp_path):
    html_file = tmp_path / "current.html"
    previous_file = tmp_path / "previous.html"
    html_file.write_text('<p><a href="https://example.com">Example</a> <a href="/local">Local</a></p>')
    previous_file.write_text('<p><a href="https://typo.com">Typo</a></p>')

    result = run_script(
        "--source", "https://blog.example.net/post/",
        "--html-file", str(html_file),
        "--previous-html-file", str(previous_file),
        "--dry-run",
    )

    assert result.returncode == 0
    lines = result.stdout.splitlines()
    assert lines[:2] == ["https://example.com/", "https://typo.com/"]
    assert "Links: 2" in result.stdout


def test_missing_html_file(tmp_path):
    result = run_script(
        "--source", "https://blog.example.net/post/",
        "--html-file", str(tmp_path / "missing.html"),
        "--dry-run",
    )

    assert result.returncode == 1
    assert "Could not read HTML" in result.stdout
