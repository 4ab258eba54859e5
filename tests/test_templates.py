"""Command decision table tests."""

from __future__ import annotations

import shlex

import pytest

from filestage.models import DownloaderFlavor, RetrievalRequest
from filestage.templates import (
    CERTIFICATE,
    NOVALIDATE,
    PASSWORD,
    PLAIN,
    PROTOCOL_MODES,
    TEMPLATES,
    build_command,
    credential_mode,
    ps_quote,
)

TARGET = "/srv/staging/app/a.tgz"


def _request(source="https://example.com/a.tgz", **kwargs):
    return RetrievalRequest(source=source, name="a.tgz", **kwargs)


def test_table_covers_every_flavor_protocol_and_mode():
    expected = {
        (flavor, protocol, mode)
        for flavor in DownloaderFlavor
        for protocol, modes in PROTOCOL_MODES.items()
        for mode in modes
    }
    assert set(TEMPLATES) == expected


@pytest.mark.parametrize(
    "kwargs,protocol,mode",
    [
        ({}, "https", PLAIN),
        ({"username": "u", "password": "p"}, "https", PASSWORD),
        ({"username": "u", "certificate": "/c.pem", "novalidate": True}, "https", PASSWORD),
        ({"certificate": "/c.pem", "novalidate": True}, "https", CERTIFICATE),
        ({"novalidate": True}, "https", NOVALIDATE),
        ({"certificate": "/c.pem"}, "http", PLAIN),
        ({"novalidate": True}, "ftp", PLAIN),
        ({"username": "u", "password": "p"}, "ftp", PASSWORD),
    ],
)
def test_credential_mode_precedence(kwargs, protocol, mode):
    assert credential_mode(_request(**kwargs), protocol) == mode


def test_curl_templates():
    cases = {
        ("http", PLAIN): "curl -f -L -o {t} {s}",
        ("http", PASSWORD): "curl -f -L -o {t} -u u:p {s}",
        ("https", CERTIFICATE): "curl -f -L -o {t} -E /c.pem:p {s}",
        ("https", NOVALIDATE): "curl -f -L -o {t} {s}",
        ("ftp", PLAIN): "curl -o {t} {s}",
        ("ftp", PASSWORD): "curl -o {t} -u u:p {s}",
    }
    request = _request(source="x://h/a", username="u", password="p", certificate="/c.pem")
    for (protocol, mode), expected in cases.items():
        cmd = build_command(DownloaderFlavor.CURL, protocol, request, TARGET, mode=mode)
        assert cmd == expected.format(t=TARGET, s="x://h/a"), (protocol, mode)


def test_curl_option_is_inserted_verbatim():
    request = _request(curl_option="--retry 3 --proxy http://proxy:3128")
    cmd = build_command(DownloaderFlavor.CURL, "https", request, TARGET)

    assert cmd == f"curl --retry 3 --proxy http://proxy:3128 -f -L -o {TARGET} https://example.com/a.tgz"


def test_curl_certificate_without_password():
    cmd = build_command(DownloaderFlavor.CURL, "https", _request(certificate="/c.pem"), TARGET)

    assert cmd == f"curl -f -L -o {TARGET} -E /c.pem https://example.com/a.tgz"


def test_wget_templates():
    request = _request(username="bob", password="s3cret pass")
    cmd = build_command(DownloaderFlavor.WGET, "https", request, TARGET)

    assert cmd == f"wget -O {TARGET} --user=bob --password='s3cret pass' https://example.com/a.tgz"
    assert "--password=s3cret pass" in shlex.split(cmd)


def test_wget_certificate_and_options():
    request = _request(certificate="/etc/pki/me.pem", wget_option="-q")
    cmd = build_command(DownloaderFlavor.WGET, "https", request, TARGET)

    assert cmd == f"wget -q -O {TARGET} --certificate=/etc/pki/me.pem https://example.com/a.tgz"


def test_wget_ftp_with_password_equals_http():
    request = _request(username="u", password="p")
    ftp = build_command(DownloaderFlavor.WGET, "ftp", request, TARGET)
    http = build_command(DownloaderFlavor.WGET, "http", request, TARGET)

    assert ftp == http


def test_password_with_quote_is_single_token():
    request = _request(username="u", password="it's \"x\"")
    cmd = build_command(DownloaderFlavor.CURL, "https", request, TARGET)

    tokens = shlex.split(cmd)
    assert tokens[tokens.index("-u") + 1] == "u:it's \"x\""


def test_powershell_plain():
    cmd = build_command(DownloaderFlavor.POWERSHELL, "http", _request("http://h/a.zip"), "C:\\stage\\a.zip")

    assert cmd.startswith("powershell.exe -ExecutionPolicy Bypass -NoLogo -NonInteractive -NoProfile -Command ")
    assert "$wc = New-Object System.Net.WebClient;" in cmd
    assert "$wc.DownloadFile('http://h/a.zip','C:\\stage\\a.zip')" in cmd
    assert "Credentials" not in cmd


def test_powershell_credentials():
    request = _request("http://h/a.zip", username="bob", password="o'neil")
    cmd = build_command(DownloaderFlavor.POWERSHELL, "http", request, "C:\\a.zip")

    assert "New-Object System.Net.NetworkCredential('bob','o''neil')" in cmd
    assert cmd.index("Credentials") < cmd.index("DownloadFile")


def test_powershell_novalidate_restores_callback():
    cmd = build_command(DownloaderFlavor.POWERSHELL, "https", _request(novalidate=True), "C:\\a.zip")

    callback = "[System.Net.ServicePointManager]::ServerCertificateValidationCallback"
    assert f"$saved = {callback};" in cmd
    assert f"{callback} = {{$true}}" in cmd
    assert f"finally {{ {callback} = $saved }}" in cmd
    assert cmd.index("try {") < cmd.index("DownloadFile") < cmd.index("finally {")


def test_powershell_ftp_equals_http():
    request = _request(username="u", password="p")
    assert build_command(DownloaderFlavor.POWERSHELL, "ftp", request, "C:\\a") == build_command(
        DownloaderFlavor.POWERSHELL, "http", request, "C:\\a"
    )


def test_ps_quote():
    assert ps_quote("plain") == "'plain'"
    assert ps_quote("it's") == "'it''s'"
    assert ps_quote('say "hi"') == "'say \\\"hi\\\"'"


def test_powershell_warns_about_ignored_certificate(caplog):
    request = _request(certificate="/etc/ssl/client.pem")

    with caplog.at_level("WARNING", logger="filestage.templates"):
        cmd = build_command(DownloaderFlavor.POWERSHELL, "https", request, "C:\\a.zip")

    assert "/etc/ssl/client.pem" not in cmd
    assert "does not support client certificates" in caplog.text
