"""
Tests for the covers configuration layer.

Run with: pytest tests/test_config.py -v
"""

import configparser

import pytest

from covers.application import Application
from covers.config import (
    BuildOptions,
    ConfigError,
    CoversConfig,
    InvalidConfiguration,
    Profile,
    parseAliases,
    parseProfile,
)


@pytest.fixture(autouse=True)
def no_profile_env(monkeypatch):
    monkeypatch.delenv("COVERS_PROFILE", raising=False)


def command_line(*argv):
    parser = Application().createOptionParser()
    options, _ = parser.parse_args(list(argv))
    return options


class TestCoversConfig:
    """Defaults, configuration files, environment and command line."""

    def test_defaults(self, tmp_path):
        config = CoversConfig(configdir=str(tmp_path))
        assert config.read_files == []
        assert config.prefix == "_"
        assert config.profile is Profile.DEBUG
        assert config.receiver_aliases == ("self", "this")
        assert config.strict_targets is True
        assert config.jobs == 1
        assert config.build_options() == BuildOptions()

    def test_files_in_order(self, tmp_path):
        (tmp_path / "setup.cfg").write_text(
            "[metadata]\nname = demo\n\n[covers]\nprefix = _orig_\nprofile = test\n"
        )
        (tmp_path / "covers.conf").write_text("[covers]\nprofile = release\njobs = 4\n")
        config = CoversConfig(configdir=str(tmp_path))
        assert len(config.read_files) == 2
        assert config.prefix == "_orig_"
        assert config.profile is Profile.RELEASE
        assert config.jobs == 4

    def test_explicit_file(self, tmp_path):
        (tmp_path / "setup.cfg").write_text("[covers]\nprofile = test\n")
        (tmp_path / "other.ini").write_text("[covers]\nstrict_targets = no\n")
        config = CoversConfig(filename="other.ini", configdir=str(tmp_path))
        assert config.profile is Profile.DEBUG
        assert config.strict_targets is False

    def test_environment_profile(self, tmp_path, monkeypatch):
        (tmp_path / "covers.conf").write_text("[covers]\nprofile = release\n")
        monkeypatch.setenv("COVERS_PROFILE", "TEST")
        config = CoversConfig(configdir=str(tmp_path))
        assert config.profile is Profile.TEST

    def test_command_line_wins(self, tmp_path, monkeypatch):
        (tmp_path / "covers.conf").write_text("[covers]\nprefix = _orig_\njobs = 2\n")
        monkeypatch.setenv("COVERS_PROFILE", "test")
        options = command_line(
            "--prefix", "__", "--profile", "release", "--receiver-aliases", "me, this",
            "--no-strict-targets",
        )
        config = CoversConfig(options, configdir=str(tmp_path))
        assert config.prefix == "__"
        assert config.profile is Profile.RELEASE
        assert config.receiver_aliases == ("me", "this")
        assert config.strict_targets is False
        # Not given on the command line
        assert config.jobs == 2

        build_options = config.build_options()
        assert build_options.policy.prefix == "__"
        assert build_options.predicate.aliases == {"me", "this"}

    def test_option_groups(self):
        options = command_line("--profile", "test", "-j", "2", "-o", "build")
        covers = options.option_groups["covers"]
        assert covers["profile"][0] == "test"
        assert covers["jobs"][0] == 2
        assert covers["prefix"][0] is None
        assert covers["strict_targets"][1].startswith("Defer mock targets")
        assert options.option_groups["output"]["output"][0] == "build"

    def test_invalid_prefix(self, tmp_path):
        (tmp_path / "covers.conf").write_text("[covers]\nprefix = orig_\n")
        with pytest.raises(InvalidConfiguration):
            CoversConfig(configdir=str(tmp_path))

    @pytest.mark.parametrize(
        "content",
        [
            "[covers]\njobs = 0\n",
            "[covers]\njobs = many\n",
            "[covers]\nprofile = staging\n",
            "[covers]\nstrict_targets = maybe\n",
            "[covers]\nreceiver_aliases = self, not-a-name\n",
        ],
    )
    def test_bad_values(self, tmp_path, content):
        (tmp_path / "covers.conf").write_text(content)
        with pytest.raises(ConfigError):
            CoversConfig(configdir=str(tmp_path))


class TestSampleConfig:
    def test_content(self, tmp_path):
        filename = tmp_path / "covers.conf"
        output = CoversConfig(read=False).write_sample_config(str(filename))
        text = filename.read_text()
        assert text == output.getvalue()
        assert text.startswith("# covers default configuration file\n")
        assert "[covers]" in text
        assert "prefix = _\n" in text
        assert "strict_targets = true\n" in text
        assert "# Number of threads parsing modules\n" in text

    def test_round_trip(self, tmp_path):
        CoversConfig(read=False).write_sample_config(str(tmp_path / "covers.conf"))
        config = CoversConfig(configdir=str(tmp_path))
        assert config.build_options() == BuildOptions()

        parser = configparser.ConfigParser()
        parser.read(tmp_path / "covers.conf")
        assert sorted(parser["covers"]) == sorted(
            ["prefix", "profile", "receiver_aliases", "strict_targets", "jobs"]
        )

    def test_existing_file(self, tmp_path):
        filename = tmp_path / "covers.conf"
        filename.write_text("[covers]\n")
        with pytest.raises(ConfigError):
            CoversConfig(read=False).write_sample_config(str(filename))
        assert filename.read_text() == "[covers]\n"

    def test_without_writing(self, tmp_path):
        output = CoversConfig(read=False).write_sample_config(
            str(tmp_path / "covers.conf"), write_file=False
        )
        assert "[covers]" in output.getvalue()
        assert not (tmp_path / "covers.conf").exists()


def test_parse_helpers():
    assert parseProfile(" Release ") is Profile.RELEASE
    assert parseProfile(Profile.TEST) is Profile.TEST
    assert not Profile.RELEASE.rewrites
    assert Profile.DEBUG.rewrites
    assert parseAliases("self,,this ") == ("self", "this")
    assert parseAliases(["me"]) == ("me",)
