PACKAGE = "covers"
VERSION = "0.3.0"
WEBSITE = "https://github.com/reanimatorzon/covers"
LICENSE = "MIT"
