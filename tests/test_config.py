import os

import pytest

from staticy.config import Config, build_config, parse_listen


@pytest.mark.parametrize(
    "listen,expected",
    [
        ("0.0.0.0:8000", ("0.0.0.0", 8000)),
        ("127.0.0.1:0", ("127.0.0.1", 0)),
        (":9000", ("0.0.0.0", 9000)),
        ("localhost:80", ("localhost", 80)),
        ("[::1]:8080", ("::1", 8080)),
    ],
)
def test_parse_listen(listen, expected):
    assert parse_listen(listen) == expected


@pytest.mark.parametrize("listen", ["8000", "host:", "host:http", "host:70000"])
def test_parse_listen_rejects_bad_addresses(listen):
    with pytest.raises(ValueError):
        parse_listen(listen)


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    config = build_config()

    assert config.root == os.path.join(str(tmp_path), "static")
    assert (config.host, config.port) == ("0.0.0.0", 8000)
    assert config.no_indexing is False
    assert config.listen == "0.0.0.0:8000"


def test_docroot_is_made_absolute(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    config = build_config(docroot="site/../public", no_indexing=True, workers=8)

    assert os.path.isabs(config.root)
    assert config.root == os.path.join(str(tmp_path), "public")
    assert config.no_indexing is True
    assert config.workers == 8


def test_config_is_immutable():
    with pytest.raises(AttributeError):
        Config(root="/srv/www").port = 1


def test_ipv6_listen_is_bracketed():
    assert Config(root="/srv/www", host="::1", port=80).listen == "[::1]:80"


def test_root_has_no_implicit_default():
    with pytest.raises(TypeError):
        Config()
