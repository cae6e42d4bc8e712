import pytest

from unionmount.args import Arguments
from unionmount.constants import DEFAULT_CONFIG_PATH


def test_default_config():
    args = Arguments.parse([])

    assert args.config == DEFAULT_CONFIG_PATH
    assert not args.helper
    assert args.port is None


def test_config_path():
    args = Arguments.parse(["/etc/unionmount.conf"])

    assert args.config == "/etc/unionmount.conf"


def test_too_many_args():
    with pytest.raises(SystemExit):
        Arguments.parse(["a", "b"])


def test_unknown_flag():
    with pytest.raises(SystemExit):
        Arguments.parse(["--verbose"])


def test_helper_flags():
    args = Arguments.parse(["--helper", "--port=31234"])

    assert args.helper
    assert args.port == 31234


def test_protocol_parsing():
    args = Arguments.parse(["--protocol=1.2.3"])

    assert args.protocol.major == 1
    assert args.protocol.minor == 2
    assert args.protocol.patch == 3

    with pytest.raises(SystemExit):
        Arguments.parse(["--protocol=abc"])


def test_port_parsing():
    with pytest.raises(SystemExit):
        Arguments.parse(["--helper", "--port=0"])

    with pytest.raises(SystemExit):
        Arguments.parse(["--helper", "--port=abc"])


def test_hidden_flags_not_in_help(capsys):
    with pytest.raises(SystemExit):
        Arguments.parse(["--help"])

    out = capsys.readouterr().out
    assert "--helper" not in out
    assert "--protocol" not in out
