import base64
import enum
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote_to_bytes

import httpx

from app.core.config import settings
from app.services.relay import encode_data_url

logger = logging.getLogger(__name__)


class ClientState(str, enum.Enum):
    idle = "idle"
    selecting = "selecting"
    ready_to_submit = "ready_to_submit"
    submitting = "submitting"
    displaying_result = "displaying_result"
    error = "error"


@dataclass
class Notification:
    title: str
    description: str
    variant: str = "default"


@dataclass
class SelectedFile:
    name: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload)
    return unquote_to_bytes(payload)


class TransformSession:
    """Headless counterpart of the upload page: select, transform, download."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        transform_path: str | None = None,
        max_file_bytes: int | None = None,
        download_filename: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
        fetch_client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.transform_path = transform_path or f"{settings.api_prefix}/transform"
        self.max_file_bytes = max_file_bytes if max_file_bytes is not None else settings.max_upload_bytes
        self.download_filename = download_filename or settings.download_filename
        # The relay may poll for a while before it answers.
        self.timeout = timeout if timeout is not None else settings.poll_interval_seconds * settings.poll_max_attempts + 30
        self._http_client = http_client
        self._fetch_client = fetch_client

        self.state = ClientState.idle
        self.selected_file: SelectedFile | None = None
        self.preview_url = ""
        self.transformed_url = ""
        self.is_loading = False
        self.notifications: list[Notification] = []
        self._state_before_selection = ClientState.idle

    @property
    def http_client(self) -> httpx.Client:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.Client(base_url=self.base_url, timeout=self.timeout)
        return self._http_client

    @property
    def fetch_client(self) -> httpx.Client:
        if self._fetch_client is None or self._fetch_client.is_closed:
            self._fetch_client = httpx.Client(timeout=60, follow_redirects=True)
        return self._fetch_client

    def close(self):
        for client in (self._http_client, self._fetch_client):
            if client is not None and not client.is_closed:
                client.close()

    def _notify(self, title: str, description: str, variant: str = "default") -> None:
        self.notifications.append(Notification(title, description, variant))

    # ---- selection ----

    def begin_selection(self) -> None:
        if self.state is not ClientState.submitting:
            self._state_before_selection = self.state
            self.state = ClientState.selecting

    def select_file(
        self,
        source: str | os.PathLike,
        content: bytes | None = None,
        content_type: str | None = None,
    ) -> bool:
        """Pick a file from disk, or pass ``content`` to use ``source`` only as its name.

        Returns False when the file is rejected; the current selection is kept.
        """
        if self.state is not ClientState.selecting:
            self.begin_selection()

        name = os.path.basename(os.fspath(source))
        size = len(content) if content is not None else Path(source).stat().st_size
        if size > self.max_file_bytes:
            limit_mb = self.max_file_bytes // (1024 * 1024)
            self._notify("File too large", f"Please select an image smaller than {limit_mb}MB", "destructive")
            self.state = self._state_before_selection
            return False
        if content is None:
            content = Path(source).read_bytes()

        ctype = content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        self.selected_file = SelectedFile(name=name, content=content, content_type=ctype)
        self.preview_url = encode_data_url(content, ctype)
        self.transformed_url = ""
        self.state = ClientState.ready_to_submit
        return True

    # ---- transform ----

    def transform(self) -> str | None:
        if self.selected_file is None or self.is_loading:
            return None

        f = self.selected_file
        self.is_loading = True
        self.state = ClientState.submitting
        try:
            resp = self.http_client.post(
                self.transform_path,
                files={"image": (f.name, f.content, f.content_type)},
            )
            if not resp.is_success:
                raise RuntimeError(f"Failed to transform image ({resp.status_code})")
            self.transformed_url = resp.json()["transformedUrl"]
        except Exception as exc:  # noqa: BLE001
            logger.error("Error transforming image: %s", exc)
            self.state = ClientState.error
            self._notify("Transformation failed", "Please try again with a different image", "destructive")
            return None
        finally:
            self.is_loading = False

        self.state = ClientState.displaying_result
        self._notify("Transformation complete!", "Your Labubu version is ready!")
        return self.transformed_url

    # ---- download ----

    def _fetch_result(self) -> bytes:
        if self.transformed_url.startswith("data:"):
            return _decode_data_url(self.transformed_url)
        resp = self.fetch_client.get(self.transformed_url)
        resp.raise_for_status()
        return resp.content

    def download(self, directory: str | os.PathLike = ".") -> Path | None:
        if not self.transformed_url:
            return None

        target = Path(directory) / self.download_filename
        tmp_path: str | None = None
        try:
            data = self._fetch_result()
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target.parent, suffix=".part", delete=False) as tmp:
                tmp_path = tmp.name
                tmp.write(data)
            os.replace(tmp_path, target)
            tmp_path = None
        except Exception as exc:  # noqa: BLE001
            logger.error("Download failed for %s: %s", self.transformed_url, exc)
            self._notify("Download failed", "Please try again", "destructive")
            return None
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
        return target
