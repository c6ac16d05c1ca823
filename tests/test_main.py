from __future__ import annotations

from deskgate.__main__ import main


def test_main_uses_configured_api_bind(monkeypatch):
    monkeypatch.setenv("DESKGATE_API_HOST", "0.0.0.0")
    monkeypatch.setenv("DESKGATE_API_PORT", "9123")

    calls: list[tuple[str, str, int]] = []

    def fake_run(app: str, host: str, port: int) -> None:
        calls.append((app, host, port))

    monkeypatch.setattr("deskgate.__main__.uvicorn.run", fake_run)

    main()

    assert calls == [("deskgate.api.app:app", "0.0.0.0", 9123)]
