from __future__ import annotations

from pathlib import Path

import pytest
import requests

from school_demand.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, chunks=(), fail_midway: bool = False):
        self.status_code = status_code
        self._chunks = list(chunks)
        self._fail_midway = fail_midway

    def iter_content(self, chunk_size: int = 1):
        for chunk in self._chunks:
            yield chunk
        if self._fail_midway:
            raise requests.ConnectionError("reset")


def test_download_writes_target(monkeypatch, tmp_path: Path):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, [b"a,b\n", b"1,2\n"]))
    target = tmp_path / "raw" / "data.csv"

    written = client.download("https://example.com/data.csv", target)

    assert written == 8
    assert target.read_bytes() == b"a,b\n1,2\n"
    assert not (tmp_path / "raw" / "data.csv.part").exists()


def test_download_retryable_status_raises_retryable_error(monkeypatch, tmp_path: Path):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503))

    with pytest.raises(RetryableHttpError):
        client.download("https://example.com/data.csv", tmp_path / "data.csv")
    assert not (tmp_path / "data.csv").exists()


def test_download_client_error_is_not_retried(monkeypatch, tmp_path: Path):
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs["url"])
        return FakeResponse(404)

    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.0, max_wait=0.0))
    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(HttpRequestError):
        client.download("https://example.com/missing.csv", tmp_path / "missing.csv")
    assert len(calls) == 1


def test_download_retries_then_succeeds(monkeypatch, tmp_path: Path):
    responses = [FakeResponse(502), FakeResponse(200, [b"ok"])]
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.0, max_wait=0.0))
    monkeypatch.setattr("time.sleep", lambda _seconds: None)
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: responses.pop(0))

    client.download("https://example.com/data.csv", tmp_path / "data.csv")

    assert (tmp_path / "data.csv").read_bytes() == b"ok"


def test_interrupted_download_leaves_no_partial_file(monkeypatch, tmp_path: Path):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, [b"half"], fail_midway=True))

    with pytest.raises(RetryableHttpError):
        client.download("https://example.com/data.csv", tmp_path / "data.csv")
    assert list(tmp_path.iterdir()) == []


def test_connection_error_is_retryable(monkeypatch, tmp_path: Path):
    def refuse(**_kwargs):
        raise requests.ConnectionError("refused")

    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", refuse)

    with pytest.raises(RetryableHttpError):
        client.download("https://example.com/data.csv", tmp_path / "data.csv")
