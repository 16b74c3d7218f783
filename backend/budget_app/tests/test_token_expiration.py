from datetime import datetime
import importlib
import pathlib
import sys

from jose import jwt

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))


def _minutes_until_expiry(auth) -> float:
    token = auth.create_access_token(data={"sub": "kid@example.com"})
    decoded = jwt.decode(token, auth.SECRET_KEY, algorithms=[auth.ALGORITHM])
    exp = datetime.utcfromtimestamp(decoded["exp"])
    return (exp - datetime.utcnow()).total_seconds() / 60


def test_access_token_expiration_respects_env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1")
    import budget_app.auth as auth
    importlib.reload(auth)
    assert 0.75 <= _minutes_until_expiry(auth) <= 1.25

    monkeypatch.delenv("ACCESS_TOKEN_EXPIRE_MINUTES", raising=False)
    importlib.reload(auth)
    assert auth.ACCESS_TOKEN_EXPIRE_MINUTES == 30
    assert 29 <= _minutes_until_expiry(auth) <= 31
