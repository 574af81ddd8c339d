#!/usr/bin/env python3

"""
List style classes.

A simple script to generate a list of the style classes used in one or more
utf8 encoded provider markup files, split into classes that h2u knows and
classes that it doesn't. Requires python3.

This script is public domain.

"""

import argparse
import collections
import glob
import re
from typing import Counter

from h2u import BODYRE, CLASSROLES, HEADERCLASSES, POETRYRE

# -------------------------------------------------------------------------- #

VERSION = "1.0"

# -------------------------------------------------------------------------- #

# presentation-only classes that are expected in provider markup.
# they carry no role, so h2u keeps their text as ordinary verse text.
PLAINCLASSES = {
    "add",
    "bold",
    "cw",
    "ital",
    "sc",
    "smallcaps",
    "sup",
}

# regex for finding class attributes
CLASSRE = re.compile(r"""\bclass\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.U + re.I)

# -------------------------------------------------------------------------- #


def isknown(name: str) -> bool:
    """Test whether a style class is recognized."""
    return (
        name in CLASSROLES
        or name in HEADERCLASSES
        or name in PLAINCLASSES
        or POETRYRE.match(name) is not None
        or BODYRE.match(name) is not None
    )


def getclasses(text: str) -> list[str]:
    """Get every style class used in some markup, in order of use."""
    found = []
    for match in CLASSRE.finditer(text):
        found.extend((match.group(1) or match.group(2) or "").split())
    return found


def processclasses(fnames: list[str], ccounts: bool) -> tuple[set[str], set[str]]:
    """Process style classes in all files. Return known and unknown sets."""
    count = 0
    countclasses: Counter[str] = collections.Counter()

    filenames = []
    for _ in fnames:
        if "*" in _:
            filenames.extend(glob.glob(_))
        else:
            filenames.append(_)

    for fname in filenames:
        with open(fname, "rb") as infile:
            intext = infile.read().decode("utf-8-sig")

            # build usage counts
            for i in getclasses(intext):
                count += 1
                countclasses[i] += 1

    # split classes into known and unknown sets
    knownset = {_ for _ in countclasses if isknown(_)}
    unknownset = set(countclasses).difference(knownset)

    # output results.
    print()
    if knownset:
        print(f"Known Style Classes: {', '.join(sorted(knownset))}\n")
    if unknownset:
        print(f"Unknown Style Classes: {', '.join(sorted(unknownset))}\n")

    # print class usage counts
    if ccounts:
        print("\nClass usage count:\n")
        for i in sorted(countclasses):
            print(f"{countclasses[i]: 8} - {i}")
        print(f"\nTotal number of style classes found:   {count}\n")

    return knownset, unknownset


# -------------------------------------------------------------------------- #


def main() -> None:
    """Process our command line arguments and list the classes."""
    parser = argparse.ArgumentParser(
        description="""
            A simple script to generate a list of style classes that were used
            in one or more utf8 encoded provider markup files.
        """,
        epilog=f"""
            * Version: {VERSION} * This script is public domain *
        """,
    )
    parser.add_argument(
        "-c", help="include usage counts for classes", action="store_true"
    )
    parser.add_argument(
        "file", help="name of file to process (wildcards allowed)", nargs="+"
    )
    args = parser.parse_args()

    processclasses(args.file, args.c)


if __name__ == "__main__":
    main()
