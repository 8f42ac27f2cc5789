import logging
import pathlib
import sys
from optparse import OptionGroup

from covers.build import Build
from covers.config import (
    ConfigError,
    CoversConfig,
    OptionParserWithSections,
    createFilename,
)
from covers.errors import CoversError
from covers.version import LICENSE, PACKAGE, VERSION, WEBSITE
from covers.write_code import WriteCode

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(name)s] %(message)s"


class Application:
    """
    Application class is responsible to run the covers build pass:
     - parse the command line
     - setup logging
     - build the modules given as arguments
     - write the rewritten modules, or only check them
    """

    NAME = PACKAGE

    # Command line usage
    USAGE = "%prog [options] PATH..."

    # Number of command line arguments: fixed value or a range (min, max).
    # Use (min, None) to only check the minimum number of arguments.
    NB_ARGUMENTS = (1, None)

    def __init__(self, argv=None):
        self.argv = argv
        self.exitcode = 0
        self.options = None
        self.arguments = []
        self.config = None
        self._handler = None
        self._previous_level = logging.NOTSET

    def createOptionParser(self):
        parser = OptionParserWithSections(usage=self.USAGE, prog=self.NAME)
        parser.add_option(
            "--version",
            help="Display covers version (%s) and exit" % VERSION,
            action="store_true",
        )
        parser.add_option(
            "--config",
            help="Read the [covers] section of this file instead of setup.cfg and covers.conf",
            type="str",
            metavar="FILE",
        )
        parser.add_option(
            "--write-config",
            help="Write a sample configuration file (to --config or covers.conf) and exit",
            action="store_true",
        )
        parser.add_option(
            "-v", "--verbose",
            help="Log every rewritten declaration",
            action="store_true",
        )
        parser.add_option(
            "-q", "--quiet",
            help="Only log errors",
            action="store_true",
        )

        output = OptionGroup(parser, "Output")
        output.add_option(
            "-o", "--output",
            help="Write the rewritten modules under this directory (default: stdout)",
            type="str",
            metavar="DIR",
        )
        output.add_option(
            "--check",
            help="Only validate the bindings, write nothing",
            action="store_true",
        )
        output.add_option(
            "--module-name",
            help="Module name of a single file argument (default: the file name)",
            type="str",
            metavar="NAME",
        )
        parser.add_option_group(output)

        build = OptionGroup(parser, "Covers")
        build.add_option(
            "--prefix",
            help="Prefix of the name the original body of a mock point is kept under",
            type="str",
        )
        build.add_option(
            "--profile",
            help="Build profile: debug, test or release",
            type="choice",
            choices=("debug", "test", "release"),
        )
        build.add_option(
            "--receiver-aliases",
            help="Comma-separated parameter names recognised as a method receiver",
            type="str",
            metavar="NAMES",
        )
        build.add_option(
            "--no-strict-targets",
            help="Defer mock targets outside the build unit to run time",
            action="store_false",
            dest="strict_targets",
        )
        build.add_option(
            "-j", "--jobs",
            help="Number of threads parsing modules",
            type="int",
        )
        parser.add_option_group(build)
        return parser

    def parseOptions(self):
        """Create command line options and parse them."""
        parser = self.createOptionParser()
        self.options, self.arguments = parser.parse_args(self.argv)

        # Just want to know the version?
        if self.options.version:
            print("covers version %s" % VERSION)
            print("License: %s" % LICENSE)
            print("Website: %s" % WEBSITE)
            print("")
            return False

        # Just want to write a config file?
        if self.options.write_config:
            filename = self.options.config or createFilename()
            try:
                CoversConfig(read=False).write_sample_config(filename)
            except ConfigError as error:
                print("%s: error: %s" % (self.NAME, error), file=sys.stderr)
                self.exitcode = 1
            else:
                print("Configuration written to %s" % filename)
            return False

        return self.processOptions(parser, self.options, self.arguments)

    def processOptions(self, parser, options, arguments):
        """Check the number of arguments."""
        nb_arg = len(arguments)
        min_arg, max_arg = self.NB_ARGUMENTS
        need_arg = nb_arg < min_arg or (max_arg is not None and max_arg < nb_arg)
        if need_arg:
            parser.print_help()
            self.exitcode = 1
            return False
        if options.module_name and (nb_arg != 1 or pathlib.Path(arguments[0]).is_dir()):
            print("%s: error: --module-name needs a single file argument" % self.NAME, file=sys.stderr)
            self.exitcode = 1
            return False
        return True

    def setupLogging(self):
        level = logging.WARNING
        if self.options.verbose:
            level = logging.DEBUG
        if self.options.quiet:
            level = logging.ERROR
        self._handler = logging.StreamHandler(sys.stderr)
        self._handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger = logging.getLogger(PACKAGE)
        self._previous_level = package_logger.level
        package_logger.addHandler(self._handler)
        package_logger.setLevel(level)

    def cleanupLogging(self):
        if self._handler is not None:
            package_logger = logging.getLogger(PACKAGE)
            package_logger.removeHandler(self._handler)
            package_logger.setLevel(self._previous_level)
            self._handler = None

    def loadConfig(self):
        filename = configdir = None
        if self.options.config:
            file_path = pathlib.Path(self.options.config)
            if not file_path.exists():
                raise ConfigError("Configuration file not found: %s" % file_path)
            filename = file_path.name
            configdir = str(file_path.parent)
        self.config = CoversConfig(self.options, filename=filename, configdir=configdir)
        if self.config.read_files:
            logger.debug("Configuration read from %s", ", ".join(self.config.read_files))

    def createBuild(self):
        build = Build(self.config)
        for argument in self.arguments:
            path = pathlib.Path(argument)
            if path.is_dir():
                build.add_package(path)
            else:
                build.add_file(path, self.options.module_name)
        return build

    def outputPath(self, result):
        parts = result.module_name.split(".")
        if result.is_package:
            parts.append("__init__")
        return pathlib.Path(self.options.output, *parts).with_suffix(".py")

    def writeResults(self, results):
        writer = WriteCode()
        profile = self.config.profile.value
        for result in results.values():
            header = "# Generated by covers %s from %s (%s profile)" % (
                VERSION,
                result.filename,
                profile,
            )
            if self.options.output:
                path = self.outputPath(result)
                path.parent.mkdir(parents=True, exist_ok=True)
                writer.createFile(str(path))
                logger.info("Writing %s", path)
            else:
                writer.useStream(sys.stdout)
            try:
                writer.write(0, header)
                writer.write_source(result.source)
            finally:
                if self.options.output:
                    writer.close()

    def runProject(self):
        self.loadConfig()
        build = self.createBuild()
        results = build.run()
        if self.options.check:
            for result in results.values():
                logger.info("%s: ok", result.filename)
            return
        self.writeResults(results)

    def main(self, exit_at_end=True):
        """
        Main function of covers: parse the command line, call runProject(),
        catch errors, and exit (if exit_at_end is True) with 0 on success or 1
        on error.
        """
        if self.parseOptions():
            self.setupLogging()
            try:
                self.runProject()
            except (CoversError, ConfigError, OSError, ValueError) as error:
                logger.error("%s", error)
                self.exitcode = 1
            except KeyboardInterrupt:
                logger.error("Build interrupted!")
                self.exitcode = 1
            finally:
                self.cleanupLogging()
        if exit_at_end:
            sys.exit(self.exitcode)
        return self.exitcode


def main(argv=None):
    return Application(argv).main(exit_at_end=False)


if __name__ == "__main__":
    sys.exit(main())
