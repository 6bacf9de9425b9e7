from pathlib import Path

import pytest

from jstat.config import ConfigurationError, StatConfig
from jstat.main import build_parser


def parse(tmp_path: Path, *extra):
    return build_parser().parse_args(["--input", str(tmp_path), *extra])


def test_from_args(tmp_path: Path):
    args = parse(
        tmp_path, "-t", "10", "-l", "3", "-u", "sshd.service", "-p", "Failed .*"
    )

    config = StatConfig.from_args(args)

    assert config.input == tmp_path
    assert config.top_talkers == 10
    assert config.large_messages == 3
    assert config.unit == "sshd.service"
    assert config.pattern.pattern == "Failed .*"
    assert config.jobs == 1
    assert not config.recursive
    assert config.output == "text"


def test_only_one_ranking_required(tmp_path: Path):
    config = StatConfig.from_args(parse(tmp_path, "--large-messages", "2"))

    assert config.large_messages_enabled
    assert not config.talkers_enabled


@pytest.mark.parametrize(
    "extra",
    [
        [],
        ["-t", "0"],
        ["-t", "0", "-l", "0"],
        ["-t", "-1", "-l", "2"],
        ["-t", "1", "-p", "("],
        ["-t", "1", "-p", "[a-"],
        ["-t", "1", "-j", "0"],
        ["-t", "1", "--since", "not a date"],
        ["-t", "1", "--since", "2022-10-08", "--until", "2022-10-07"],
    ],
)
def test_invalid(tmp_path: Path, extra):
    with pytest.raises(ConfigurationError):
        StatConfig.from_args(parse(tmp_path, *extra))


def test_missing_input(tmp_path: Path):
    args = build_parser().parse_args(["--input", str(tmp_path / "nope"), "-t", "1"])

    with pytest.raises(ConfigurationError):
        StatConfig.from_args(args)


def test_input_required():
    args = build_parser().parse_args(["-t", "1"])

    with pytest.raises(ConfigurationError):
        StatConfig.from_args(args)


def test_remote_input_not_checked_locally(tmp_path: Path):
    args = build_parser().parse_args(
        ["--input", "/var/log/journal/none", "-t", "1", "--ssh-host", "10.0.0.4"]
    )

    config = StatConfig.from_args(args)

    assert config.remote


def test_time_window(tmp_path: Path):
    config = StatConfig.from_args(
        parse(
            tmp_path,
            "-t",
            "1",
            "--since",
            "2022-10-07T11:47:53Z",
            "--until",
            "2022-10-07 12:00:00",
        )
    )

    assert config.since == 1665143273000000
    assert config.until == 1665144000000000
    record_filter = config.record_filter()
    assert record_filter.since == config.since


def test_key_builder(tmp_path: Path):
    config = StatConfig.from_args(
        parse(tmp_path, "-t", "1", "--normalize", "--group-by-process")
    )

    key_builder = config.key_builder()

    assert key_builder.normalize
    assert key_builder.group_by_process


def test_validate_output_format(tmp_path: Path):
    config = StatConfig(input=tmp_path, top_talkers=1, output="yaml")

    with pytest.raises(ConfigurationError):
        config.validate()


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)
