#!/usr/bin/env python3

"""
Read and create style class config files for h2u.

Config files let h2u handle markup from a provider edition that uses style
class names different from the NLT html export. The [ROLES] section maps a
style class to a role:

    [ROLES]
    chapter-number = chapter
    sectionhead = heading
    red =

An empty value removes a class from the default table.

This script is public domain.

"""

import argparse
import configparser
import os.path
import sys

from h2u import CLASSROLES, LOG, ROLES

# -------------------------------------------------------------------------- #


def readconfig(fname: str) -> dict[str, str]:
    """Read a config file and return the style class roles."""
    if not os.path.isfile(fname):
        raise FileNotFoundError(f"config file not found: {fname}")

    # set up config parser and read our config file...
    config = configparser.ConfigParser(allow_no_value=True, interpolation=None)
    config.optionxform = str  # keep class name case
    config.read(fname, encoding="utf-8")

    # start with the default roles
    roles = dict(CLASSROLES)
    if not config.has_section("ROLES"):
        LOG.warning("No ROLES section in %s... using default roles.", fname)
        return roles

    for name, role in config.items("ROLES"):
        role = (role or "").strip()
        if role == "":
            roles.pop(name, None)
        elif role not in ROLES:
            LOG.warning("Unknown role %s for class %s... skipped.", role, name)
        else:
            roles[name] = role

    # return our roles
    return roles


def genconf() -> configparser.ConfigParser:
    """Generate contents of a config file."""
    # set up config parser
    config = configparser.ConfigParser(allow_no_value=True, interpolation=None)
    config.optionxform = str  # keep class name case

    # create ROLES section of config...
    config["ROLES"] = {}
    for name, role in CLASSROLES.items():
        config["ROLES"][name] = role

    # return our generated configuration
    return config


# -------------------------------------------------------------------------- #


def main() -> None:
    """
    Main routine.

    Process our command line arguments and write a starter config file,
    or check an existing one.

    """
    parser = argparse.ArgumentParser(
        description="""
            Create or check style class config files for h2u.
        """
    )
    parser.add_argument("-v", help="verbose output", action="store_true")
    parser.add_argument(
        "-o", help="name of config file to create", metavar="FILE"
    )
    parser.add_argument(
        "-c", help="config file to check", metavar="FILE"
    )
    args = parser.parse_args()

    if args.o is None and args.c is None:
        parser.error("one of -o or -c is required")

    if args.c is not None:
        if not os.path.isfile(args.c):
            print("ERROR: config file is not present or is not a normal file.",
                  file=sys.stderr)
            sys.exit(1)
        roles = readconfig(args.c)
        for name in sorted(roles):
            print(f"{name} = {roles[name]}")

    if args.o is not None:
        if args.v:
            print(f"Writing config file to {args.o} ")
        with open(args.o, "w", encoding="utf-8") as ofile:
            genconf().write(ofile)

    if args.v:
        print("Done.")


if __name__ == "__main__":
    main()
