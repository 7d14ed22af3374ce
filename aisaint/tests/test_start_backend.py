import aisaint.start_backend as start_backend


def test_serve_runs_app_with_env_bind(monkeypatch):
    calls = []
    monkeypatch.setattr(start_backend.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setenv("AISAINT_HOST", "127.0.0.1")
    monkeypatch.setenv("AISAINT_PORT", "9001")

    start_backend.serve()

    app, kwargs = calls[0]
    assert app == "aisaint.main:app"
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9001
