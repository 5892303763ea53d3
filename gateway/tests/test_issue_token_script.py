import importlib.util
from pathlib import Path

import jwt

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "issue_token.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("issue_token_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_prints_verifiable_token(capsys, jwt_secret):
    script = _load_script()
    assert script.main(["--user", "u1", "--plan", "enterprise", "--secret", jwt_secret]) == 0
    token = capsys.readouterr().out.strip()
    claims = jwt.decode(token, jwt_secret, algorithms=["HS256"])
    assert claims["userId"] == "u1"
    assert claims["plan"] == "enterprise"


def test_rejects_unknown_plan(capsys, jwt_secret):
    script = _load_script()
    assert script.main(["--user", "u1", "--plan", "platinum", "--secret", jwt_secret]) == 2
    assert "unknown plan" in capsys.readouterr().err
