#!/usr/bin/env python3
"""Convert a bundle of provider chapters to unified chapter documents."""
import concurrent.futures
import json
import logging
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser
from functools import partial
from os import path
from pathlib import Path
from sys import exit as sysexit
from typing import Any

from h2u import (
    CLASSROLES,
    LOG,
    META,
    NoContentError,
    chaptertodict,
    parse,
    parseresponse,
)
from h2uconf import readconfig

# pylint: disable=too-many-arguments


def readbundle(fname: str) -> dict[str, dict[str, Any]]:
    """
    Read a bundle file and return its chapters by key.

    A bundle is a JSON object of chapters ({"reference": ..., "html": ...})
    either keyed directly or grouped into categories first. A chapter may
    hold a decoded JSON response under "json" instead of "html".

    """
    LOG.info("Reading bundle and splitting into separate chapters... ")
    with open(fname, "rb") as ifile:
        data = json.loads(ifile.read().decode("utf-8-sig"))

    chapters = {}
    for key, value in data.items():
        if not isinstance(value, dict):
            continue
        if "html" in value or "json" in value:
            chapters[key] = value
            continue
        # category of chapters
        for key2, value2 in value.items():
            if isinstance(value2, dict) and ("html" in value2 or "json" in value2):
                chapters[key2] = value2
    return chapters


def convertchapter(
    item: tuple[str, dict[str, Any]], translation: str, roles: dict[str, str]
) -> tuple[str, dict[str, Any] | None, str]:
    """Convert one bundle chapter. Return key, chapter dict and error text."""
    key, entry = item
    reference = entry.get("reference") or key.replace("_", " ")
    try:
        if "html" in entry:
            chapter = parse(entry["html"], reference, translation, roles)
        else:
            chapter = parseresponse(entry["json"], reference, translation, roles)
    except NoContentError as err:
        return key, None, str(err)
    return key, chaptertodict(chapter), ""


def processbundle(
    fname: str,
    translation: str,
    roles: dict[str, str],
    dodebug: bool,
    keys: list[str] | None,
    outputdir: str | None,
) -> int:
    """Convert the chapters in a bundle. Return the number of failures."""
    chapters = readbundle(fname)
    if keys:
        chapters = {k: v for k, v in chapters.items() if k in keys}

    convert = partial(convertchapter, translation=translation, roles=roles)

    LOG.info("Processing chapters...")
    with concurrent.futures.ProcessPoolExecutor() as executor:
        results = (
            list(executor.map(convert, chapters.items()))
            if not dodebug
            else [convert(_) for _ in chapters.items()]
        )

    converted = {}
    failures = 0
    for key, chapter, errortext in results:
        if chapter is None:
            LOG.error("ERROR: %s... %s", key, errortext)
            failures += 1
            continue
        LOG.info("... %s: %d verses", key, len(chapter["verses"]))
        converted[key] = chapter

    if outputdir is None:
        print(json.dumps(converted, indent=2, ensure_ascii=False))
    else:
        pth = Path(outputdir)
        pth.mkdir(parents=True, exist_ok=True)
        for key, chapter in converted.items():
            with open(pth / f"{key}.json", "w", encoding="utf-8") as ofile:
                ofile.write(json.dumps(chapter, indent=2, ensure_ascii=False))
                ofile.write("\n")

    LOG.info("Done. %d converted, %d failed.", len(converted), failures)
    return failures


def main() -> None:
    """Process our command line arguments and convert the bundle."""
    parser = ArgumentParser(
        formatter_class=ArgumentDefaultsHelpFormatter,
        description="""
            convert a bundle of Bible provider chapters to unified chapter
            documents.
        """,
        epilog=f"""
            * Version: {META['VERSION']} * {META['DATE']} * This script is public domain. *
        """,
    )
    parser.add_argument("-d", help="debug mode", action="store_true")
    parser.add_argument("-v", help="verbose output", action="store_true")
    parser.add_argument(
        "-t", help="translation id", metavar="TRANSLATION", default="NLT"
    )
    parser.add_argument("-c", help="style class config file", metavar="FILE")
    parser.add_argument(
        "-k", help="only convert these chapter keys", metavar="KEY", nargs="+"
    )
    parser.add_argument(
        "-o", help="specify output directory", metavar="output_dir"
    )
    parser.add_argument("file", help="bundle file to process", metavar="filename")
    args = parser.parse_args()

    if not path.isfile(args.file):
        LOG.error("*** input file not present or not a normal file. ***")
        sysexit(1)

    if args.v:
        LOG.setLevel(logging.INFO)
    if args.d:
        LOG.setLevel(logging.DEBUG)

    roles = readconfig(args.c) if args.c is not None else CLASSROLES
    if processbundle(args.file, args.t, roles, args.d, args.k, args.o):
        sysexit(1)


# ---------------------------------------------------------------------------#


if __name__ == "__main__":
    main()
