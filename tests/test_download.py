import os

import pytest
import requests

from wle import download
from wle.config import DataConfig


class FakeResponse:
    def __init__(self, chunks, status=200):
        self.chunks = chunks
        self.status = status
        self.headers = {'content-length': str(sum(len(c) for c in chunks))}

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size=1024):
        yield from self.chunks


def test_download_skips_existing_file(tmp_path, monkeypatch):
    target = tmp_path / "pml-training.csv"
    target.write_text("already here")

    def fail(*args, **kwargs):
        raise AssertionError("should not fetch")

    monkeypatch.setattr(download.requests, "get", fail)
    assert download.download_data("http://example.com/x.csv", str(target)) == str(target)
    assert target.read_text() == "already here"


def test_download_fetches_missing_file(tmp_path, monkeypatch):
    calls = []

    def fake_get(url, stream=False):
        calls.append(url)
        return FakeResponse([b"a,b\n", b"1,2\n"])

    monkeypatch.setattr(download.requests, "get", fake_get)
    target = tmp_path / "nested" / "pml-testing.csv"

    download.download_data("http://example.com/pml-testing.csv", str(target))

    assert calls == ["http://example.com/pml-testing.csv"]
    assert target.read_bytes() == b"a,b\n1,2\n"
    assert not os.path.exists(str(target) + ".part")


def test_download_http_error_aborts(tmp_path, monkeypatch):
    monkeypatch.setattr(download.requests, "get", lambda url, stream=False: FakeResponse([], status=404))
    target = tmp_path / "pml-training.csv"

    with pytest.raises(requests.HTTPError):
        download.download_data("http://example.com/pml-training.csv", str(target))
    assert not target.exists()


def test_download_datasets_uses_config(tmp_path, monkeypatch):
    fetched = []

    def fake_get(url, stream=False):
        fetched.append(url)
        return FakeResponse([b"x\n"])

    monkeypatch.setattr(download.requests, "get", fake_get)
    config = DataConfig(url_base="http://example.com/data/", raw_dir=str(tmp_path))

    train_path, test_path = download.download_datasets(config)

    assert fetched == ["http://example.com/data/pml-training.csv",
                       "http://example.com/data/pml-testing.csv"]
    assert os.path.exists(train_path) and os.path.exists(test_path)
