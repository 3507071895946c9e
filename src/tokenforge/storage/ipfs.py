from __future__ import annotations

import base64
import http.client
import json
import urllib.parse
from dataclasses import dataclass
from io import BytesIO
from typing import BinaryIO, Optional, Protocol, Union

from tokenforge.util.ipfs_cid import validate_ipfs_cid


class IpfsError(RuntimeError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code


@dataclass(frozen=True)
class IpfsConfig:
    api_base: str
    gateway_base: str
    project_id: str = ""
    project_secret: str = ""
    timeout_s: float = 30.0
    pin: bool = True


@dataclass(frozen=True)
class IpfsAddResult:
    cid: str
    size: int


class PinningClient(Protocol):
    def add(self, data: Union[bytes, str], *, name: str) -> IpfsAddResult: ...

    def gateway_url(self, cid: str) -> str: ...


def _send_chunk(conn: http.client.HTTPConnection, data: bytes) -> None:
    if not data:
        return
    conn.send(f"{len(data):X}\r\n".encode("ascii"))
    conn.send(data)
    conn.send(b"\r\n")


def _finish_chunks(conn: http.client.HTTPConnection) -> None:
    conn.send(b"0\r\n\r\n")


def parse_ipfs_add_response(raw: bytes) -> IpfsAddResult:
    """
    /api/v0/add returns NDJSON (one JSON per line).
    We take the last valid JSON object and extract Hash + Size.
    """
    txt = raw.decode("utf-8", errors="replace").strip()
    if not txt:
        raise IpfsError("empty_response", "ipfs add returned an empty response")

    last_obj: Optional[dict] = None
    for line in txt.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            last_obj = obj

    if last_obj is None:
        raise IpfsError("bad_response", f"ipfs add: unparseable response: {txt[:200]}")

    cid = str(last_obj.get("Hash") or "").strip()
    if not cid:
        raise IpfsError("missing_hash", f"ipfs add: no Hash in {last_obj!r}")
    v = validate_ipfs_cid(cid)
    if not v.ok:
        raise IpfsError(v.reason, f"ipfs add: returned cid rejected ({v.reason}): {cid[:128]}")

    try:
        size = int(str(last_obj.get("Size") or "0").strip())
    except ValueError:
        size = 0
    return IpfsAddResult(cid=v.cid, size=size)


class IpfsHttpClient:
    """Kubo-compatible /api/v0/add client (Infura, Pinata gateways, local node)."""

    def __init__(self, cfg: IpfsConfig) -> None:
        self.cfg = cfg

    def gateway_url(self, cid: str) -> str:
        cid = (cid or "").strip()
        base = (self.cfg.gateway_base or "").strip().rstrip("/")
        if not cid or not base:
            return ""
        return f"{base}/ipfs/{cid}"

    def _connection(self) -> tuple[http.client.HTTPConnection, str]:
        api_base = (self.cfg.api_base or "").strip().rstrip("/")
        if not api_base:
            raise IpfsError("ipfs_disabled", "ipfs api base is empty")
        u = urllib.parse.urlparse(api_base)
        scheme = (u.scheme or "http").lower()
        host = u.hostname or "127.0.0.1"
        port = int(u.port or (443 if scheme == "https" else 80))
        if scheme == "https":
            return http.client.HTTPSConnection(host, port, timeout=self.cfg.timeout_s), host
        return http.client.HTTPConnection(host, port, timeout=self.cfg.timeout_s), host

    def add_fileobj(self, *, name: str, fileobj: BinaryIO) -> IpfsAddResult:
        """Stream a file-like object with chunked transfer encoding."""
        qs = urllib.parse.urlencode(
            {
                "pin": "true" if self.cfg.pin else "false",
                "wrap-with-directory": "false",
                "progress": "false",
            }
        )
        path = f"/api/v0/add?{qs}"

        conn, host = self._connection()

        boundary = "----tokenforge-ipfs-boundary-4c1e9a07d2b85f36"
        filename = (name or "upload").strip() or "upload"
        preamble = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            f"Content-Type: application/octet-stream\r\n"
            f"\r\n"
        ).encode("utf-8")
        epilogue = f"\r\n--{boundary}--\r\n".encode("utf-8")

        try:
            conn.putrequest("POST", path)
            conn.putheader("Host", host)
            conn.putheader("Content-Type", f"multipart/form-data; boundary={boundary}")
            conn.putheader("Transfer-Encoding", "chunked")
            if self.cfg.project_id:
                token = base64.b64encode(f"{self.cfg.project_id}:{self.cfg.project_secret}".encode("utf-8"))
                conn.putheader("Authorization", f"Basic {token.decode('ascii')}")
            conn.endheaders()

            _send_chunk(conn, preamble)
            while True:
                chunk = fileobj.read(1024 * 256)
                if not chunk:
                    break
                if isinstance(chunk, str):
                    chunk = chunk.encode("utf-8")
                _send_chunk(conn, chunk)
            _send_chunk(conn, epilogue)
            _finish_chunks(conn)

            resp = conn.getresponse()
            body = resp.read()
        except (OSError, http.client.HTTPException) as e:
            raise IpfsError("network_error", f"ipfs add: {e}") from e
        finally:
            conn.close()

        if resp.status < 200 or resp.status >= 300:
            msg = body.decode("utf-8", errors="replace").strip()
            raise IpfsError(f"http_{resp.status}", f"ipfs add: http_{resp.status}: {msg[:300]}")

        return parse_ipfs_add_response(body)

    def add(self, data: Union[bytes, str], *, name: str) -> IpfsAddResult:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self.add_fileobj(name=name, fileobj=BytesIO(data))
