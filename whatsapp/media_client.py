from __future__ import annotations

import base64
from urllib import error, request


class MediaDownloadError(RuntimeError):
    pass


class MediaClient:
    """Fetches message attachments from Twilio media URLs with HTTP basic auth."""

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        timeout_sec: float = 10.0,
        max_bytes: int | None = None,
    ) -> None:
        self.account_sid = (account_sid or "").strip()
        self.auth_token = (auth_token or "").strip()
        self.timeout_sec = float(timeout_sec)
        self.max_bytes = int(max_bytes) if max_bytes else None

    def download(self, url: str) -> tuple[bytes, str | None]:
        media_url = (url or "").strip()
        if not media_url:
            raise MediaDownloadError("media url is empty")

        req = request.Request(url=media_url, method="GET")
        if self.account_sid and self.auth_token:
            credentials = f"{self.account_sid}:{self.auth_token}".encode("utf-8")
            # Twilio redirects media to a storage host that must not receive the account credentials.
            req.add_unredirected_header("Authorization", "Basic " + base64.b64encode(credentials).decode("ascii"))
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                if self.max_bytes is not None:
                    content = resp.read(self.max_bytes + 1)
                    if len(content) > self.max_bytes:
                        raise MediaDownloadError(f"media exceeds {self.max_bytes} bytes")
                else:
                    content = resp.read()
                content_type = resp.headers.get("Content-Type")
                return content, content_type
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise MediaDownloadError(f"media download error: status={exc.code} body={body[:300]}") from exc
        except error.URLError as exc:
            raise MediaDownloadError(f"media download connection error: {exc}") from exc
        except TimeoutError as exc:
            raise MediaDownloadError("media download timeout") from exc


def filename_from_url(url: str | None) -> str | None:
    path = str(url or "").split("?", 1)[0].rstrip("/")
    name = path.rsplit("/", 1)[-1] if path else ""
    return name if "." in name else None
