"""Release hosting bridge — one release per tag, assets idempotent by name.

Hosts
-----
``GitHubReleaseHost``
    GitHub REST API over httpx. A new release is created as a draft and
    made public only after every asset is uploaded. On a release that is
    already public, new bytes go up under staging names and replace the
    same-named assets once all uploads succeeded; a failed attempt removes
    its staged uploads.
``DirectoryReleaseHost``
    A local directory per tag. Used for dry runs and tests.

Both overwrite same-named assets, so re-publishing a tag never duplicates
entries. Transport failures and 5xx/429 responses raise
``TransientUploadError`` so the aggregator can retry the whole call.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx

from shipwright.core.errors import ReleaseError, TransientUploadError

logger = logging.getLogger(__name__)

Checkpoint = Callable[[], None]


@runtime_checkable
class ReleaseHost(Protocol):
    """Protocol for release hosting platforms."""

    def create_or_update_release(
        self,
        tag: str,
        files: Sequence[Path],
        *,
        checkpoint: Checkpoint | None = None,
    ) -> str:
        """Publish *files* on the release for *tag* and return its URL.

        ``checkpoint`` is called before each upload and may raise to stop.
        """
        ...


# Name prefix for assets uploaded to an already published release.
STAGING_PREFIX = "shipwright-staging-"


def _safe_tag(tag: str) -> str:
    return tag.replace("/", "__")


# ---------------------------------------------------------------------------
# Local directory host
# ---------------------------------------------------------------------------


class DirectoryReleaseHost:
    """Publishes releases into ``{root}/{tag}/``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def create_or_update_release(
        self,
        tag: str,
        files: Sequence[Path],
        *,
        checkpoint: Checkpoint | None = None,
    ) -> str:
        release_dir = self.root / _safe_tag(tag)
        staging = self.root / f".{_safe_tag(tag)}.partial"
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)

        for path in files:
            if checkpoint is not None:
                checkpoint()
            shutil.copy2(path, staging / path.name)

        # Move staged files over the release in one pass; same names overwrite.
        release_dir.mkdir(parents=True, exist_ok=True)
        for staged in staging.iterdir():
            os.replace(staged, release_dir / staged.name)
        staging.rmdir()
        logger.info("Published %d asset(s) to %s", len(files), release_dir)
        return release_dir.resolve().as_uri()

    def list_assets(self, tag: str) -> list[str]:
        release_dir = self.root / _safe_tag(tag)
        if not release_dir.exists():
            return []
        return sorted(p.name for p in release_dir.iterdir() if p.is_file())


# ---------------------------------------------------------------------------
# GitHub host
# ---------------------------------------------------------------------------


class GitHubReleaseHost:
    """GitHub Releases via the REST API.

    Parameters
    ----------
    repository:
        ``owner/name`` of the repository that owns the release.
    token:
        Token with ``contents: write`` permission. Checked when publishing,
        so a host can be built for runs that never release.
    client:
        Optional preconfigured ``httpx.Client`` (tests pass one with a
        ``MockTransport``). When omitted a client is created per call.
    """

    def __init__(
        self,
        repository: str,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        uploads_url: str = "https://uploads.github.com",
        client: httpx.Client | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.repository = repository
        self._token = token
        self._api = api_url.rstrip("/")
        self._uploads = uploads_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _request(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = client.request(
                method, url, headers={**self._headers, **(headers or {})}, **kwargs
            )
        except httpx.TransportError as exc:
            msg = f"GitHub request {method} {url} failed: {exc}"
            raise TransientUploadError(msg) from exc
        if response.status_code == 429 or response.status_code >= 500:
            msg = f"GitHub API error {response.status_code} for {method} {url}"
            raise TransientUploadError(msg)
        return response

    @staticmethod
    def _fail(response: httpx.Response, action: str) -> ReleaseError:
        return ReleaseError(
            f"GitHub API error {response.status_code} while {action}: {response.text}"
        )

    def _find(self, client: httpx.Client, tag: str) -> dict[str, Any] | None:
        base = f"{self._api}/repos/{self.repository}/releases"
        response = self._request(client, "GET", f"{base}/tags/{tag}")
        if response.status_code == 200:
            return response.json()
        if response.status_code != 404:
            raise self._fail(response, f"looking up release {tag}")

        # Drafts are not reachable by tag; a previous attempt may have left one.
        response = self._request(client, "GET", base, params={"per_page": 100})
        if response.status_code != 200:
            raise self._fail(response, f"listing releases for {tag}")
        for release in response.json():
            if release.get("draft") and release.get("tag_name") == tag:
                return release
        return None

    def _create_draft(self, client: httpx.Client, tag: str) -> dict[str, Any]:
        base = f"{self._api}/repos/{self.repository}/releases"
        response = self._request(
            client, "POST", base, json={"tag_name": tag, "name": tag, "draft": True}
        )
        if response.status_code != 201:
            raise self._fail(response, f"creating release {tag}")
        logger.info("Created draft GitHub release %s on %s", tag, self.repository)
        return response.json()

    def _update(
        self, client: httpx.Client, url: str, body: dict[str, Any], action: str
    ) -> dict[str, Any]:
        response = self._request(client, "PATCH", url, json=body)
        if response.status_code != 200:
            raise self._fail(response, action)
        return response.json()

    def _delete_asset(self, client: httpx.Client, asset_id: int, name: str) -> None:
        url = f"{self._api}/repos/{self.repository}/releases/assets/{asset_id}"
        response = self._request(client, "DELETE", url)
        if response.status_code not in (204, 404):
            raise self._fail(response, f"deleting asset {name}")

    def _upload(self, client: httpx.Client, release_id: int, path: Path, name: str) -> int:
        url = f"{self._uploads}/repos/{self.repository}/releases/{release_id}/assets"
        response = self._request(
            client,
            "POST",
            url,
            params={"name": name},
            content=path.read_bytes(),
            headers={"Content-Type": "application/octet-stream"},
        )
        if response.status_code != 201:
            raise self._fail(response, f"uploading {path.name}")
        return response.json()["id"]

    def _discard(self, client: httpx.Client, uploaded: dict[str, int]) -> None:
        for name, asset_id in uploaded.items():
            try:
                self._delete_asset(client, asset_id, name)
            except (ReleaseError, TransientUploadError) as exc:
                logger.warning("Could not remove staged asset %s: %s", name, exc)

    def _publish(
        self,
        client: httpx.Client,
        tag: str,
        files: Sequence[Path],
        checkpoint: Checkpoint | None,
    ) -> str:
        release = self._find(client, tag) or self._create_draft(client, tag)
        existing = {a["name"]: a["id"] for a in release.get("assets", [])}
        draft = bool(release.get("draft"))

        # A published release only ever gains complete sets: new bytes are
        # uploaded under staging names and swapped in once all succeeded.
        for name in [n for n in existing if n.startswith(STAGING_PREFIX)]:
            self._delete_asset(client, existing.pop(name), name)
        if draft:
            for path in files:
                if path.name in existing:
                    self._delete_asset(client, existing.pop(path.name), path.name)

        uploaded: dict[str, int] = {}
        try:
            for path in files:
                if checkpoint is not None:
                    checkpoint()
                name = path.name if draft else f"{STAGING_PREFIX}{path.name}"
                uploaded[name] = self._upload(client, release["id"], path, name)
                logger.info("Uploaded %s to release %s", path.name, tag)
        except Exception:
            if not draft:
                self._discard(client, uploaded)
            raise

        if draft:
            release = self._update(
                client,
                f"{self._api}/repos/{self.repository}/releases/{release['id']}",
                {"draft": False},
                f"publishing release {tag}",
            )
            logger.info("Published GitHub release %s", tag)
        else:
            for path in files:
                if path.name in existing:
                    self._delete_asset(client, existing[path.name], path.name)
                asset_id = uploaded[f"{STAGING_PREFIX}{path.name}"]
                self._update(
                    client,
                    f"{self._api}/repos/{self.repository}/releases/assets/{asset_id}",
                    {"name": path.name},
                    f"renaming asset {path.name}",
                )
        return release.get("html_url", "")

    def create_or_update_release(
        self,
        tag: str,
        files: Sequence[Path],
        *,
        checkpoint: Checkpoint | None = None,
    ) -> str:
        if not self._token:
            msg = "A GitHub token is required to publish releases"
            raise ReleaseError(msg)
        if self._client is not None:
            return self._publish(self._client, tag, files, checkpoint)
        with httpx.Client(timeout=self._timeout) as client:
            return self._publish(client, tag, files, checkpoint)
