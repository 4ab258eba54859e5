"""Download command decision table.

Every command line filestage can emit for http, https and ftp sources lives
in ``TEMPLATES``, keyed by ``(flavor, protocol, credential mode)``. A template
is a tuple of tokens; tokens that render empty (an unset option string, say)
are dropped so the joined command never carries doubled spaces.

Quoting rules:
  - source (s3 included), ``user:pass`` and a standalone password are shell-quoted
  - target file, option strings and certificate paths are inserted verbatim
  - PowerShell literals are single-quoted with embedded quotes doubled
"""

from __future__ import annotations

import logging
import shlex
from typing import Optional

from .models import DownloaderFlavor, RetrievalRequest

log = logging.getLogger(__name__)

# Credential modes
PLAIN = "plain"
PASSWORD = "password"
CERTIFICATE = "certificate"
NOVALIDATE = "novalidate"

PROTOCOL_MODES: dict[str, tuple[str, ...]] = {
    "http": (PLAIN, PASSWORD),
    "https": (PLAIN, PASSWORD, CERTIFICATE, NOVALIDATE),
    "ftp": (PLAIN, PASSWORD),
}

POWERSHELL = "powershell.exe -ExecutionPolicy Bypass -NoLogo -NonInteractive -NoProfile -Command"

S3_TEMPLATE = "aws s3 cp {source} {target}"

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_CURL_HTTP = ("curl", "{curl_option}", "-f", "-L", "-o", "{target}", "{source}")
_CURL_HTTP_PASSWD = ("curl", "{curl_option}", "-f", "-L", "-o", "{target}", "-u", "{user_pass}", "{source}")
_CURL_HTTP_CERT = ("curl", "{curl_option}", "-f", "-L", "-o", "{target}", "-E", "{cert_spec}", "{source}")
_CURL_FTP = ("curl", "{curl_option}", "-o", "{target}", "{source}")
_CURL_FTP_PASSWD = ("curl", "{curl_option}", "-o", "{target}", "-u", "{user_pass}", "{source}")

_WGET_HTTP = ("wget", "{wget_option}", "-O", "{target}", "{source}")
_WGET_HTTP_PASSWD = (
    "wget", "{wget_option}", "-O", "{target}", "--user={username}", "--password={password}", "{source}",
)
_WGET_HTTP_CERT = ("wget", "{wget_option}", "-O", "{target}", "--certificate={certificate}", "{source}")

_PS_CLIENT = "$wc = New-Object System.Net.WebClient;"
_PS_FETCH = "$wc.DownloadFile({ps_source},{ps_target})"
_PS_CREDENTIALS = "$wc.Credentials = New-Object System.Net.NetworkCredential({ps_username},{ps_password});"
_PS_CALLBACK = "[System.Net.ServicePointManager]::ServerCertificateValidationCallback"

_PS_HTTP = (POWERSHELL, '"' + _PS_CLIENT + _PS_FETCH + '"')
_PS_HTTP_PASSWD = (POWERSHELL, '"' + _PS_CLIENT + _PS_CREDENTIALS + _PS_FETCH + '"')
# Validation is switched off for this one call and restored even when it throws.
_PS_HTTP_NOVALIDATE = (
    POWERSHELL,
    '"$saved = ' + _PS_CALLBACK + ";"
    + "try {{ " + _PS_CALLBACK + " = {{$true}};" + _PS_CLIENT + _PS_FETCH + " }}"
    + " finally {{ " + _PS_CALLBACK + ' = $saved }}"',
)

TEMPLATES: dict[tuple[DownloaderFlavor, str, str], tuple[str, ...]] = {
    (DownloaderFlavor.CURL, "http", PLAIN): _CURL_HTTP,
    (DownloaderFlavor.CURL, "http", PASSWORD): _CURL_HTTP_PASSWD,
    (DownloaderFlavor.CURL, "https", PLAIN): _CURL_HTTP,
    (DownloaderFlavor.CURL, "https", PASSWORD): _CURL_HTTP_PASSWD,
    (DownloaderFlavor.CURL, "https", CERTIFICATE): _CURL_HTTP_CERT,
    (DownloaderFlavor.CURL, "https", NOVALIDATE): _CURL_HTTP,
    (DownloaderFlavor.CURL, "ftp", PLAIN): _CURL_FTP,
    (DownloaderFlavor.CURL, "ftp", PASSWORD): _CURL_FTP_PASSWD,

    (DownloaderFlavor.WGET, "http", PLAIN): _WGET_HTTP,
    (DownloaderFlavor.WGET, "http", PASSWORD): _WGET_HTTP_PASSWD,
    (DownloaderFlavor.WGET, "https", PLAIN): _WGET_HTTP,
    (DownloaderFlavor.WGET, "https", PASSWORD): _WGET_HTTP_PASSWD,
    (DownloaderFlavor.WGET, "https", CERTIFICATE): _WGET_HTTP_CERT,
    (DownloaderFlavor.WGET, "https", NOVALIDATE): _WGET_HTTP,
    (DownloaderFlavor.WGET, "ftp", PLAIN): _WGET_HTTP,
    (DownloaderFlavor.WGET, "ftp", PASSWORD): _WGET_HTTP_PASSWD,

    (DownloaderFlavor.POWERSHELL, "http", PLAIN): _PS_HTTP,
    (DownloaderFlavor.POWERSHELL, "http", PASSWORD): _PS_HTTP_PASSWD,
    (DownloaderFlavor.POWERSHELL, "https", PLAIN): _PS_HTTP,
    (DownloaderFlavor.POWERSHELL, "https", PASSWORD): _PS_HTTP_PASSWD,
    (DownloaderFlavor.POWERSHELL, "https", CERTIFICATE): _PS_HTTP,
    (DownloaderFlavor.POWERSHELL, "https", NOVALIDATE): _PS_HTTP_NOVALIDATE,
    (DownloaderFlavor.POWERSHELL, "ftp", PLAIN): _PS_HTTP,
    (DownloaderFlavor.POWERSHELL, "ftp", PASSWORD): _PS_HTTP_PASSWD,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def ps_quote(value: str) -> str:
    """Quote *value* as a PowerShell single-quoted literal."""
    return "'" + value.replace("'", "''").replace('"', '\\"') + "'"


def credential_mode(request: RetrievalRequest, protocol: str) -> str:
    """Pick the credential mode: username, then certificate, then novalidate."""
    if request.username:
        return PASSWORD
    if protocol == "https":
        if request.certificate:
            return CERTIFICATE
        if request.novalidate:
            return NOVALIDATE
    return PLAIN


def _values(request: RetrievalRequest, target: str) -> dict[str, str]:
    password = request.password or ""
    cert_spec = request.certificate or ""
    if cert_spec and password:
        cert_spec = f"{cert_spec}:{shlex.quote(password)}"
    return {
        "curl_option": request.curl_option or "",
        "wget_option": request.wget_option or "",
        "target": target,
        "source": shlex.quote(request.source),
        "user_pass": shlex.quote(f"{request.username or ''}:{password}"),
        "username": request.username or "",
        "password": shlex.quote(password),
        "certificate": request.certificate or "",
        "cert_spec": cert_spec,
        "ps_source": ps_quote(request.source),
        "ps_target": ps_quote(target),
        "ps_username": ps_quote(request.username or ""),
        "ps_password": ps_quote(password),
    }


def render(tokens: tuple[str, ...], values: dict[str, str]) -> str:
    rendered = (token.format(**values) for token in tokens)
    return " ".join(token for token in rendered if token)


def build_command(
    flavor: DownloaderFlavor,
    protocol: str,
    request: RetrievalRequest,
    target: str,
    mode: Optional[str] = None,
) -> str:
    """Render the command line fetching *request.source* into *target*."""
    key = (flavor, protocol, mode or credential_mode(request, protocol))
    if key == (DownloaderFlavor.POWERSHELL, "https", CERTIFICATE):
        log.warning("powershell does not support client certificates; ignoring %s", request.certificate)
    return render(TEMPLATES[key], _values(request, target))


def build_s3_command(source: str, target: str) -> str:
    return S3_TEMPLATE.format(source=shlex.quote(source), target=target)
