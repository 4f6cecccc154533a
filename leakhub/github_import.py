"""
Import of trusted leaks from a GitHub repository.

The repository layout is one top-level directory per provider, one file per
target. Every file is stored as an already verified leak with no submitter
and no request, so it never enters consensus.
"""

import base64
import binascii
from typing import Any, Dict, Optional

import requests

from . import __version__
from .env import DEFAULT_GITHUB_BRANCH, DEFAULT_GITHUB_REPO
from .logger import get_logger
from .retry import RetryError, exponential_backoff, is_transient_error, should_retry_http_status
from .schema import ValidationError
from .storage import LeakStore, StorageError

logger = get_logger()

GITHUB_API_URL = "https://api.github.com"


class GitHubImportError(Exception):
    """Raised when the repository listing cannot be fetched."""
    pass


class RetryableHTTPError(Exception):
    """Response status worth retrying (rate limit, 5xx)."""
    pass


def _headers(token: Optional[str]) -> Dict[str, str]:
    headers = {
        "User-Agent": f"LeakHub/{__version__}",
        "Accept": "application/vnd.github+json",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


@exponential_backoff(
    max_retries=3,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, RetryableHTTPError),
)
def _get_with_retry(url: str, headers: Dict[str, str]):
    """GET with automatic retry on transient errors."""
    resp = requests.get(url, headers=headers, timeout=15)
    if should_retry_http_status(resp.status_code):
        raise RetryableHTTPError(f"GitHub returned {resp.status_code} for {url}")
    return resp


def fetch_contents(url: str, token: Optional[str] = None) -> Any:
    """
    Fetch a GitHub contents API URL and return the decoded JSON.

    Raises:
        GitHubImportError: On any HTTP error, exhausted retries, or request failure
    """
    try:
        resp = _get_with_retry(url, _headers(token))
        resp.raise_for_status()
        return resp.json()
    except RetryError as e:
        logger.record_error("RetryError")
        logger.error("GitHub request kept failing", url=url, error=str(e))
        raise GitHubImportError(f"GitHub request failed after retries: {url}") from e
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "HTTPError"
        logger.record_error(f"HTTPError_{status}")
        logger.error("GitHub request failed", url=url, status=status)
        raise GitHubImportError(f"GitHub request failed ({status}): {url}") from e
    except requests.exceptions.RequestException as e:
        logger.record_error("RequestException")
        logger.error("GitHub request error", url=url, error=str(e), transient=is_transient_error(e))
        raise GitHubImportError(f"GitHub request error: {e}") from e


def decode_base64_utf8(data: str) -> str:
    """Decode GitHub's base64 file content; tolerates line breaks, URL-safe alphabet and missing padding."""
    data = data.replace("\r", "").replace("\n", "").strip()
    data = data.replace("-", "+").replace("_", "/")
    data += "=" * (-len(data) % 4)
    return base64.b64decode(data, validate=True).decode("utf-8", errors="replace")


def import_github_leaks(
    store: LeakStore,
    repo: str = DEFAULT_GITHUB_REPO,
    branch: str = DEFAULT_GITHUB_BRANCH,
    token: Optional[str] = None,
) -> int:
    """
    Import every file of a GitHub repository as a verified leak.

    Args:
        store: Store to insert leaks into
        repo: "owner/name" of the repository
        branch: Branch to read
        token: Optional GitHub API token

    Returns:
        Number of leaks inserted

    Raises:
        GitHubImportError: If a directory listing cannot be fetched; single
            files that fail to fetch, decode or store are logged and skipped
    """
    base = f"{GITHUB_API_URL}/repos/{repo}/contents"
    inserted = 0

    for directory in fetch_contents(f"{base}/?ref={branch}", token):
        if directory.get("type") != "dir":
            continue

        for entry in fetch_contents(f"{base}/{directory['path']}?ref={branch}", token):
            if entry.get("type") != "file":
                continue

            try:
                content = fetch_contents(f"{base}/{entry['path']}?ref={branch}", token)
            except GitHubImportError as e:
                logger.warning("Skipping unreachable file", path=entry["path"], error=str(e))
                continue

            try:
                leak_text = decode_base64_utf8(content.get("content", ""))
                store.insert_verified_leak(
                    target_name=content["name"],
                    provider=content["path"].split("/")[0],
                    leak_text=leak_text,
                    target_type="model",
                )
                inserted += 1
            except (binascii.Error, ValidationError) as e:
                logger.warning("Skipping undecodable file", path=entry["path"], error=str(e))
            except StorageError as e:
                logger.warning("Skipping file the store rejected", path=entry["path"], error=str(e))

    logger.record_import(inserted)
    logger.info("GitHub import complete", repo=repo, branch=branch, inserted=inserted)
    return inserted
