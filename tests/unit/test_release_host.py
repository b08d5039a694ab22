"""Tests for the release hosts — GitHub over httpx.MockTransport, and directories."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from shipwright.bridge.release_host import (
    STAGING_PREFIX,
    DirectoryReleaseHost,
    GitHubReleaseHost,
)
from shipwright.core.errors import JobCancelledError, ReleaseError, TransientUploadError


class FakeGitHub:
    """Minimal in-memory GitHub Releases API."""

    def __init__(self) -> None:
        self.releases: dict[str, dict] = {}
        self.assets: dict[int, dict] = {}
        self.requests: list[tuple[str, str]] = []
        self._next_id = 100
        self._uploads = 0
        self.fail_next: list[int] = []
        self.fail_upload: dict[int, int] = {}  # upload number -> status

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _release_json(self, release: dict) -> dict:
        assets = [a for a in self.assets.values() if a["release_id"] == release["id"]]
        return {**release, "assets": [{"id": a["id"], "name": a["name"]} for a in assets]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0))
        assert request.headers["Authorization"] == "Bearer secret-token"

        if request.method == "GET" and "/releases/tags/" in path:
            tag = path.rsplit("/", 1)[-1]
            release = self.releases.get(tag)
            # Like GitHub, drafts are not found by tag.
            if release is None or release["draft"]:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self._release_json(release))

        if request.method == "GET" and path.endswith("/releases"):
            return httpx.Response(
                200, json=[self._release_json(r) for r in self.releases.values()]
            )

        if request.method == "POST" and path.endswith("/releases"):
            body = json.loads(request.content)
            release = {
                "id": self._id(),
                "tag_name": body["tag_name"],
                "draft": body.get("draft", False),
                "html_url": f"https://github.com/o/r/releases/tag/{body['tag_name']}",
            }
            self.releases[body["tag_name"]] = release
            return httpx.Response(201, json=self._release_json(release))

        if request.method == "DELETE" and "/releases/assets/" in path:
            asset_id = int(path.rsplit("/", 1)[-1])
            self.assets.pop(asset_id, None)
            return httpx.Response(204)

        if request.method == "PATCH" and "/releases/assets/" in path:
            asset = self.assets[int(path.rsplit("/", 1)[-1])]
            asset["name"] = json.loads(request.content)["name"]
            return httpx.Response(200, json={"id": asset["id"], "name": asset["name"]})

        if request.method == "PATCH" and "/releases/" in path:
            release_id = int(path.rsplit("/", 1)[-1])
            release = next(r for r in self.releases.values() if r["id"] == release_id)
            release.update(json.loads(request.content))
            return httpx.Response(200, json=self._release_json(release))

        if request.method == "POST" and path.endswith("/assets"):
            assert request.url.host == "uploads.github.com"
            assert request.headers["Content-Type"] == "application/octet-stream"
            self._uploads += 1
            if self._uploads in self.fail_upload:
                return httpx.Response(self.fail_upload[self._uploads], json={"message": "nope"})
            release_id = int(path.split("/")[-2])
            name = request.url.params["name"]
            asset = {"id": self._id(), "name": name, "release_id": release_id, "data": request.content}
            self.assets[asset["id"]] = asset
            return httpx.Response(201, json={"id": asset["id"], "name": name})

        return httpx.Response(500)

    def asset_names(self, tag: str) -> list[str]:
        release_id = self.releases[tag]["id"]
        return sorted(a["name"] for a in self.assets.values() if a["release_id"] == release_id)

    def visible(self, tag: str) -> bool:
        return tag in self.releases and not self.releases[tag]["draft"]


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def host(github: FakeGitHub) -> GitHubReleaseHost:
    client = httpx.Client(transport=httpx.MockTransport(github.handler))
    return GitHubReleaseHost("o/r", "secret-token", client=client)


@pytest.fixture
def files(tmp_dir: Path) -> list[Path]:
    paths = []
    for name in ("pkg.deb", "pkg.rpm"):
        path = tmp_dir / name
        path.write_bytes(name.encode())
        paths.append(path)
    return paths


class TestGitHubReleaseHost:
    def test_creates_release_and_uploads(self, host, github, files):
        url = host.create_or_update_release("v1.2.0", files)
        assert url == "https://github.com/o/r/releases/tag/v1.2.0"
        assert github.asset_names("v1.2.0") == ["pkg.deb", "pkg.rpm"]

    def test_republish_replaces_assets(self, host, github, files):
        host.create_or_update_release("v1.2.0", files)
        files[0].write_bytes(b"rebuilt")
        host.create_or_update_release("v1.2.0", files)

        assert github.asset_names("v1.2.0") == ["pkg.deb", "pkg.rpm"]
        assert len(github.releases) == 1
        deb = next(a for a in github.assets.values() if a["name"] == "pkg.deb")
        assert deb["data"] == b"rebuilt"
        assert sum(1 for method, _ in github.requests if method == "DELETE") == 2

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_server_errors_are_transient(self, host, github, files, status):
        github.fail_next = [status]
        with pytest.raises(TransientUploadError):
            host.create_or_update_release("v1.2.0", files)

    def test_transport_errors_are_transient(self, files):
        def broken(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(broken))
        with pytest.raises(TransientUploadError):
            GitHubReleaseHost("o/r", "t", client=client).create_or_update_release("v1", files)

    def test_client_errors_are_fatal(self, host, github, files):
        github.fail_next = [403]
        with pytest.raises(ReleaseError, match="403"):
            host.create_or_update_release("v1.2.0", files)

    def test_token_required(self, files):
        host = GitHubReleaseHost("o/r", "")
        with pytest.raises(ReleaseError, match="token"):
            host.create_or_update_release("v1.2.0", files)

    def test_checkpoint_called_per_file(self, host, files):
        calls: list[int] = []
        host.create_or_update_release("v1.2.0", files, checkpoint=lambda: calls.append(1))
        assert len(calls) == len(files)


class TestGitHubAtomicPublish:
    """A release is public only with its complete asset list."""

    @pytest.fixture
    def three_files(self, tmp_dir: Path) -> list[Path]:
        paths = []
        for name in ("a.deb", "b.rpm", "c.tar.xz"):
            path = tmp_dir / name
            path.write_bytes(name.encode())
            paths.append(path)
        return paths

    def test_new_release_published_after_all_uploads(self, host, github, three_files):
        host.create_or_update_release("v1.2.0", three_files)
        assert github.visible("v1.2.0")
        assert github.asset_names("v1.2.0") == ["a.deb", "b.rpm", "c.tar.xz"]
        release_id = github.releases["v1.2.0"]["id"]
        publish = github.requests.index(("PATCH", f"/repos/o/r/releases/{release_id}"))
        uploads = [
            i for i, (method, path) in enumerate(github.requests)
            if method == "POST" and path.endswith("/assets")
        ]
        assert max(uploads) < publish

    def test_failed_upload_leaves_only_a_draft(self, host, github, three_files):
        github.fail_upload = {2: 422}
        with pytest.raises(ReleaseError, match="422"):
            host.create_or_update_release("v1.2.0", three_files)
        assert not github.visible("v1.2.0")
        assert github.releases["v1.2.0"]["draft"] is True

    def test_retry_finishes_the_draft(self, host, github, three_files):
        github.fail_upload = {2: 422}
        with pytest.raises(ReleaseError):
            host.create_or_update_release("v1.2.0", three_files)
        github.fail_upload = {}
        host.create_or_update_release("v1.2.0", three_files)

        assert len(github.releases) == 1
        assert github.visible("v1.2.0")
        assert github.asset_names("v1.2.0") == ["a.deb", "b.rpm", "c.tar.xz"]

    def test_abort_during_upload_publishes_nothing(self, host, github, three_files):
        calls = 0

        def stop_on_second() -> None:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise JobCancelledError("aborted")

        with pytest.raises(JobCancelledError):
            host.create_or_update_release("v1.2.0", three_files, checkpoint=stop_on_second)
        assert not github.visible("v1.2.0")

    def test_failed_republish_keeps_previous_assets(self, host, github, three_files):
        host.create_or_update_release("v1.2.0", three_files)
        three_files[0].write_bytes(b"rebuilt")
        github.fail_upload = {5: 422}  # second upload of the republish

        with pytest.raises(ReleaseError):
            host.create_or_update_release("v1.2.0", three_files)

        assert github.visible("v1.2.0")
        assert github.asset_names("v1.2.0") == ["a.deb", "b.rpm", "c.tar.xz"]
        deb = next(a for a in github.assets.values() if a["name"] == "a.deb")
        assert deb["data"] == b"a.deb"

    def test_republish_swaps_in_new_bytes(self, host, github, three_files):
        host.create_or_update_release("v1.2.0", three_files)
        three_files[0].write_bytes(b"rebuilt")
        host.create_or_update_release("v1.2.0", three_files)

        assert github.asset_names("v1.2.0") == ["a.deb", "b.rpm", "c.tar.xz"]
        deb = next(a for a in github.assets.values() if a["name"] == "a.deb")
        assert deb["data"] == b"rebuilt"
        assert not any(n.startswith(STAGING_PREFIX) for n in github.asset_names("v1.2.0"))


class TestDirectoryReleaseHost:
    def test_publish_and_overwrite(self, tmp_dir, files):
        host = DirectoryReleaseHost(tmp_dir / "releases")
        url = host.create_or_update_release("v1.2.0", files)
        assert url.startswith("file://")
        files[0].write_bytes(b"new")
        host.create_or_update_release("v1.2.0", files[:1])
        assert host.list_assets("v1.2.0") == ["pkg.deb", "pkg.rpm"]
        assert (tmp_dir / "releases" / "v1.2.0" / "pkg.deb").read_bytes() == b"new"

    def test_interrupted_publish_leaves_release_untouched(self, tmp_dir, files):
        host = DirectoryReleaseHost(tmp_dir / "releases")
        calls = 0

        def stop_on_second() -> None:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise RuntimeError("aborted")

        with pytest.raises(RuntimeError):
            host.create_or_update_release("v1.2.0", files, checkpoint=stop_on_second)
        assert host.list_assets("v1.2.0") == []
