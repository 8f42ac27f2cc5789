import configparser
import optparse
import pathlib
from configparser import NoOptionError, NoSectionError
from dataclasses import dataclass
from enum import Enum
from io import StringIO
from optparse import OptionParser
from os import getcwd, getenv
from os.path import join as path_join

from covers.errors import CoversError
from covers.mangle import DEFAULT_PREFIX, NamePolicy
from covers.signature import RECEIVER_ALIASES, ReceiverPredicate

SECTION = "covers"
CONFIG_FILENAMES = ("setup.cfg", "covers.conf")
PROFILE_ENV = "COVERS_PROFILE"

DEFAULTS = {
    "covers_prefix": DEFAULT_PREFIX,
    "covers_profile": "debug",
    "covers_receiver_aliases": ",".join(RECEIVER_ALIASES),
    "covers_strict_targets": True,
    "covers_jobs": 1,
}

HELP = {
    "prefix": "Prefix of the name the original body of a mock point is kept under",
    "profile": "debug: call originals, test: call bound mocks, release: strip markers and mocks",
    "receiver_aliases": "Comma-separated parameter names recognised as a method receiver",
    "strict_targets": "Fail on mock targets outside the build unit instead of deferring them",
    "jobs": "Number of threads parsing modules",
}


class ConfigError(Exception):
    pass


class InvalidConfiguration(CoversError, ConfigError):
    """A build option would make the generated code ambiguous."""

    kind = "InvalidConfiguration"


class Profile(Enum):
    DEBUG = "debug"
    TEST = "test"
    RELEASE = "release"

    @property
    def rewrites(self) -> bool:
        return self is not Profile.RELEASE


def parseProfile(value):
    if isinstance(value, Profile):
        return value
    try:
        return Profile(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(profile.value for profile in Profile)
        raise ConfigError("Unknown profile %r, expected one of: %s" % (value, choices))


def parseAliases(value):
    if isinstance(value, str):
        value = value.split(",")
    aliases = tuple(alias.strip() for alias in value if alias.strip())
    for alias in aliases:
        if not alias.isidentifier():
            raise ConfigError("Receiver alias %r is not an identifier" % alias)
    return aliases


def createFilename(name=None, configdir=None):
    """Create a filename from the given name and configdir."""
    if name is None:
        name = CONFIG_FILENAMES[-1]
    if configdir is None:
        configdir = getcwd()
    return path_join(configdir, name)


@dataclass(frozen=True)
class BuildOptions:
    """Options of one build, fixed before the first declaration is processed."""

    policy: NamePolicy = NamePolicy()
    profile: Profile = Profile.DEBUG
    receiver_aliases: tuple = RECEIVER_ALIASES
    strict_targets: bool = True
    jobs: int = 1

    @property
    def predicate(self) -> ReceiverPredicate:
        return ReceiverPredicate(self.receiver_aliases)


class CoversConfig:
    def __init__(self, options=None, filename=None, configdir=None, read=True):
        self._parser = ConfigParserWithHelp(strict=False, interpolation=None)
        if filename is not None:
            self.filenames = [createFilename(filename, configdir)]
        else:
            self.filenames = [createFilename(name, configdir) for name in CONFIG_FILENAMES]
        if read:
            self.read_files = self._parser.read(self.filenames)
        else:
            self.read_files = []

        self.prefix = self.getstr(SECTION, "prefix", DEFAULTS["covers_prefix"])
        self.profile = parseProfile(
            self.getstr(SECTION, "profile", DEFAULTS["covers_profile"])
        )
        self.receiver_aliases = parseAliases(
            self.getstr(SECTION, "receiver_aliases", DEFAULTS["covers_receiver_aliases"])
        )
        self.strict_targets = self.getbool(
            SECTION, "strict_targets", DEFAULTS["covers_strict_targets"]
        )
        self.jobs = self.getint(SECTION, "jobs", DEFAULTS["covers_jobs"])

        env_profile = getenv(PROFILE_ENV)
        if env_profile:
            self.profile = parseProfile(env_profile)

        # Options from command line
        options: optparse.Values
        if options is not None:
            option_groups = getattr(options, "option_groups", {})
            for name, (value, help) in option_groups.get(SECTION, {}).items():
                if value is None:
                    continue
                if name == "profile":
                    value = parseProfile(value)
                elif name == "receiver_aliases":
                    value = parseAliases(value)
                setattr(self, name, value)

        if self.jobs < 1:
            raise ConfigError("jobs must be at least 1, not %s" % self.jobs)
        # Fails with InvalidConfiguration before any declaration is processed
        self.policy = NamePolicy(self.prefix)

    def build_options(self):
        return BuildOptions(
            policy=self.policy,
            profile=self.profile,
            receiver_aliases=tuple(self.receiver_aliases),
            strict_targets=bool(self.strict_targets),
            jobs=int(self.jobs),
        )

    def write_sample_config(self, filename=None, write_file=True):
        """Create a sample configuration file and optionally write it."""
        output = StringIO()
        self._parser = ConfigParserWithHelp()
        filename = filename or createFilename()
        config_file = pathlib.Path(filename)
        if write_file and config_file.exists():
            raise ConfigError("Configuration file already exists: %s" % filename)

        output.write("""# covers default configuration file\n""")
        for section_and_key, value in DEFAULTS.items():
            section, key = section_and_key.split("_", maxsplit=1)
            if section not in self._parser:
                self._parser.add_section(section)
            if isinstance(value, bool):
                value = str(value).lower()
            self._parser.set(section, key, str(value), HELP.get(key))
        self._parser.write(output)

        if write_file:
            with config_file.open("w") as file:
                file.write(output.getvalue())
        return output

    def _gettype(self, func, type_name, section, key, default_value):
        try:
            value = func(section, key)
            if func == self._parser.get:
                value = value.strip()
            return value
        except (NoSectionError, NoOptionError):
            return default_value
        except ValueError as err:
            raise ConfigError(
                "Value %s of section %s is not %s! %s" % (key, section, type_name, err)
            )

    def getstr(self, section, key, default_value=None):
        return self._gettype(self._parser.get, "a string", section, key, default_value)

    def getbool(self, section, key, default_value):
        return self._gettype(
            self._parser.getboolean, "a boolean", section, key, default_value
        )

    def getint(self, section, key, default_value):
        return self._gettype(
            self._parser.getint, "an integer", section, key, default_value
        )


class OptionParserWithSections(OptionParser):
    """OptionParser class which records the options of each group."""

    def parse_args(self, args=None, values=None):
        options, args = super().parse_args(args, values)
        options.option_groups = {}
        for section in self.option_groups:
            options.option_groups[section.title.lower()] = {}
            for option in section.option_list:
                options.option_groups[section.title.lower()][option.dest] = (
                    getattr(options, option.dest),
                    option.help,
                )

        return options, args


class ConfigParserWithHelp(configparser.ConfigParser):
    """ConfigParser class which records and writes help messages."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.help = {}

    def set(self, section, option, value=None, help=None):
        super().set(section, option, value)
        if help is not None:
            if not self.has_section(section):
                self.add_section(section)
            self.help.setdefault(section, {})
            self.help[section][option] = help

    def add_section(self, section):
        super().add_section(section)
        self.help[section] = {}

    def _write_section(self, fp, section_name, section_items, delimiter, *args, **kwargs):
        fp.write("\n[%s]\n" % section_name)
        for key, value in section_items:
            if key in self.help.get(section_name, {}):
                fp.write("\n# %s\n" % self.help[section_name][key])

            value = self._interpolation.before_write(self, section_name, key, value)
            if value is not None or not self._allow_no_value:
                value = delimiter + str(value).replace("\n", "\n\t")
            else:
                value = ""
            fp.write("%s%s\n" % (key, value))
