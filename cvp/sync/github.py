import base64
import json
import pathlib
import time
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional

import requests

import cvp.constants as cconst
from cvp.exceptions import RemoteSyncError
from cvp.utils import ensure_dir, get_logger

logger = get_logger(__name__)


@dataclass
class GitHubConfig:
    token: str
    owner: str
    repo: str
    path: str = cconst.CVP_GITHUB_DEFAULT_PATH

    @property
    def contents_url(self) -> str:
        return f"{cconst.CVP_GITHUB_API_URL}/repos/{self.owner}/{self.repo}/contents/{self.path}"


def load_github_config(path: pathlib.Path = cconst.CVP_GITHUB_CONFIG_PATH) -> Optional[GitHubConfig]:
    path = pathlib.Path(path)
    if not path.exists():
        return None

    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    return GitHubConfig(**payload)


def save_github_config(config: GitHubConfig, path: pathlib.Path = cconst.CVP_GITHUB_CONFIG_PATH) -> None:
    path = pathlib.Path(path)
    ensure_dir(path.parent, logger)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, indent=4)


def _encode_content(content: Mapping[str, Any]) -> str:
    # base64 of the UTF-8 bytes, the JSON keeps non-ASCII column names as-is
    text = json.dumps(content, ensure_ascii=False, indent=2)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def fetch_from_github(config: GitHubConfig, session: Optional[requests.Session] = None) -> Optional[dict[str, Any]]:
    """
    Fetches and parses the remote JSON file.

    The raw media type is requested, so files above the contents API size limit are returned as well.

    :return: the parsed content, or None when the file does not exist or is empty
    :raises RemoteSyncError: on connection errors, access errors, other HTTP errors, invalid JSON and
        JSON that is not an object
    """
    if session is None:
        with requests.Session() as own_session:
            return _fetch(config, own_session)
    return _fetch(config, session)


def _fetch(config: GitHubConfig, session: requests.Session) -> Optional[dict[str, Any]]:
    headers = {"Accept": cconst.CVP_GITHUB_RAW_ACCEPT}
    if config.token:
        headers["Authorization"] = f"token {config.token}"

    # cache bust to always get the latest version
    params = {"t": int(time.time() * 1000)}
    try:
        response = session.get(config.contents_url, headers=headers, params=params, timeout=cconst.CVP_GITHUB_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"GitHub fetch failed: {e}")
        raise RemoteSyncError(f"GitHub fetch error: {e}") from e

    if not response.ok:
        if response.status_code == 404:
            return None
        if response.status_code == 403:
            raise RemoteSyncError("GitHub API rate limit exceeded or access denied. Check your token.")
        raise RemoteSyncError(f"GitHub fetch error: {response.status_code} {response.reason}")

    text = response.text
    if not text or not text.strip():
        return None

    try:
        content = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse GitHub response text: {text[:100]}...")
        raise RemoteSyncError("Cloud file is not valid JSON.") from e

    if not isinstance(content, dict):
        logger.error(f"Cloud file holds a JSON {type(content).__name__}, expected an object")
        raise RemoteSyncError("Cloud file is not a JSON object.")
    return content


def _fetch_existing(config: GitHubConfig, session: requests.Session) -> tuple[Optional[str], dict[str, Any]]:
    meta_headers = {"Accept": cconst.CVP_GITHUB_JSON_ACCEPT, "Authorization": f"token {config.token}"}
    meta_response = session.get(config.contents_url, headers=meta_headers, timeout=cconst.CVP_GITHUB_TIMEOUT)

    if meta_response.status_code == 404:
        return None, {}
    if meta_response.status_code != 200:
        raise RemoteSyncError(f"GitHub API error (get metadata): {meta_response.reason}")

    sha = meta_response.json().get("sha")

    # the metadata response omits the content of files larger than 1MB, fetch it raw
    raw_headers = {"Accept": cconst.CVP_GITHUB_RAW_ACCEPT, "Authorization": f"token {config.token}"}
    raw_response = session.get(config.contents_url, headers=raw_headers, timeout=cconst.CVP_GITHUB_TIMEOUT)

    existing: dict[str, Any] = {}
    if raw_response.ok and raw_response.text and raw_response.text.strip():
        try:
            existing = json.loads(raw_response.text)
        except json.JSONDecodeError as e:
            logger.warning(f"Existing cloud file is invalid JSON, it will be overwritten: {e}")

    # only a JSON object can be merged
    if not isinstance(existing, dict):
        logger.warning(f"Existing cloud file holds a JSON {type(existing).__name__}, it will be overwritten")
        existing = {}

    return sha, existing


def upload_to_github(config: GitHubConfig,
                     content: Mapping[str, Any],
                     message: str,
                     session: Optional[requests.Session] = None) -> dict[str, Any]:
    """
    Merges `content` into the remote JSON file and commits the result.

    Top-level keys of `content` replace the remote ones, other remote keys (e.g. other model types) are kept.

    :return: the parsed response of the contents API
    :raises RemoteSyncError: on any failure
    """
    try:
        if session is None:
            with requests.Session() as own_session:
                return _upload(config, content, message, own_session)
        return _upload(config, content, message, session)
    except (RemoteSyncError, requests.RequestException) as e:
        logger.error(f"GitHub sync failed: {e}")
        raise RemoteSyncError(f"GitHub sync failed: {e}") from e


def _upload(config: GitHubConfig,
            content: Mapping[str, Any],
            message: str,
            session: requests.Session) -> dict[str, Any]:
    sha, existing = _fetch_existing(config, session)
    final_content = {**existing, **content}

    body: dict[str, Any] = {"message": message, "content": _encode_content(final_content)}
    if sha:
        body["sha"] = sha

    put_response = session.put(
        config.contents_url,
        headers={
            "Authorization": f"token {config.token}",
            "Accept": cconst.CVP_GITHUB_JSON_ACCEPT,
            "Content-Type": "application/json",
        },
        data=json.dumps(body),
        timeout=cconst.CVP_GITHUB_TIMEOUT,
    )

    if not put_response.ok:
        try:
            error_message = put_response.json().get("message") or put_response.reason
        except ValueError:
            error_message = put_response.reason
        raise RemoteSyncError(f"GitHub API error (put): {error_message}")

    logger.info(f"Uploaded {sorted(content)} to {config.owner}/{config.repo}:{config.path}")
    return put_response.json()
