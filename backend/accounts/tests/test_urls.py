import os
import subprocess
import sys

import pytest
from django.conf import settings

IMPORT_ORDERS = [
    "backend.urls",
    "accounts.views",
    "accounts.exceptions",
    "accounts.authentication",
    "rest_framework.views",
]


@pytest.mark.parametrize("module", IMPORT_ORDERS)
def test_first_import_in_fresh_interpreter(module):
    script = (
        "import django; django.setup(); "
        f"import {module}; "
        "import backend.urls; "
        "from django.urls import reverse; "
        "print(reverse('accounts:login'))"
    )
    env = dict(os.environ, DJANGO_SETTINGS_MODULE="backend.settings", PYTHONPATH=str(settings.BASE_DIR))

    result = subprocess.run(
        [sys.executable, "-c", script],
        cwd=str(settings.BASE_DIR),
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.strip() == "/api/v1/users/login/"
