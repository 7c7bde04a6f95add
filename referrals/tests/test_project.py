import os
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def test_project_starts_in_a_fresh_interpreter():
    # pytest-django has already loaded the app registry here, so import
    # cycles only show up in a new process
    env = {**os.environ, 'DJANGO_SETTINGS_MODULE': 'medinet.settings', 'ENV': 'dev'}
    result = subprocess.run([sys.executable, 'manage.py', 'check'], cwd=PROJECT_ROOT, env=env,
                            capture_output=True, text=True, timeout=120)
    assert result.returncode == 0, result.stderr
