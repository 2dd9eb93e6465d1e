import stat
import textwrap

from mergebot.core.utils.changelog import (
    filter_changelog,
    filter_changelog_lines,
    filter_changelog_text,
)

GBP_DCH_OUTPUT = textwrap.dedent("""\
    wit (2.31a-3) unstable; urgency=medium

      [ Chris Lamb ]
      * Fix for "wit: please make the build reproducible" (Closes: #831331)

      [ Michael Stapelberg ]

     -- Michael Stapelberg <stapelberg@debian.org>  Sat, 16 Jul 2016 20:39:13 +0200

    wit (2.31a-2) unstable; urgency=low

      [ Tobias Gruetzmacher ]
      * Add zlib support (Closes: #815710)
      * Don't link wfuse against libdl

     -- Michael Stapelberg <stapelberg@debian.org>  Tue, 23 Feb 2016 23:40:46 +0100
    """)

FILTERED = textwrap.dedent("""\
    wit (2.31a-3) unstable; urgency=medium

      [ Chris Lamb ]
      * Fix for "wit: please make the build reproducible" (Closes: #831331)

     -- Michael Stapelberg <stapelberg@debian.org>  Sat, 16 Jul 2016 20:39:13 +0200

    wit (2.31a-2) unstable; urgency=low

      [ Tobias Gruetzmacher ]
      * Add zlib support (Closes: #815710)
      * Don't link wfuse against libdl

     -- Michael Stapelberg <stapelberg@debian.org>  Tue, 23 Feb 2016 23:40:46 +0100
    """)


def test_empty_section_and_blank_run_removed():
    assert filter_changelog_text(GBP_DCH_OUTPUT) == FILTERED


def test_filter_is_idempotent():
    once = filter_changelog_text(GBP_DCH_OUTPUT)
    assert filter_changelog_text(once) == once


def test_section_header_printed_once_per_section():
    lines = [
        "pkg (1.1) unstable; urgency=medium",
        "",
        "  [ A ]",
        "  * one",
        "  * two",
        "",
        " -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200",
    ]
    assert filter_changelog_lines(lines) == lines


def test_bullets_without_section_untouched():
    lines = [
        "pkg (1.1) unstable; urgency=medium",
        "",
        "  * one",
        "  * two",
        "",
        " -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200",
    ]
    assert filter_changelog_lines(lines) == lines


def test_older_entries_copied_verbatim():
    text = textwrap.dedent("""\
        pkg (1.1) unstable; urgency=medium


          * new


         -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200

        pkg (1.0) unstable; urgency=medium

          [ Empty ]


          * old

         -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200
        """)
    out = filter_changelog_text(text).splitlines()
    trailer = out.index(" -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200")

    assert out[:trailer + 1] == [
        "pkg (1.1) unstable; urgency=medium",
        "",
        "  * new",
        "",
        " -- M <m@x>  Sat, 16 Jul 2016 20:39:13 +0200",
    ]
    assert out[trailer + 1:] == text.splitlines()[7:]


def test_filter_file_in_place(tmp_path):
    path = tmp_path / "changelog"
    path.write_text(GBP_DCH_OUTPUT)
    path.chmod(0o644)

    filter_changelog(path)

    assert path.read_text() == FILTERED
    assert stat.S_IMODE(path.stat().st_mode) == 0o644
    assert [p.name for p in tmp_path.iterdir()] == ["changelog"]


# ───────────────────────────────────────────────────── byte fidelity
NEW_ENTRY = (
    "pkg (1.1) unstable; urgency=medium\n"
    "\n"
    "  [ A ]\n"
    "  * fix\n"
    "\n"
    "  [ B ]\n"
    "\n"
    " -- B <b@x>  Sat, 16 Jul 2016 20:39:13 +0200\n"
    "\n"
)
NEW_ENTRY_FILTERED = (
    "pkg (1.1) unstable; urgency=medium\n"
    "\n"
    "  [ A ]\n"
    "  * fix\n"
    "\n"
    " -- B <b@x>  Sat, 16 Jul 2016 20:39:13 +0200\n"
    "\n"
)


def test_only_line_feeds_split_lines():
    older = (
        "pkg (1.0) unstable; urgency=low\n"
        "\n"
        "  * a\x0cb\x0bc\x1cd\x85e f\n"
        "\n"
        " -- B <b@x>  Fri, 15 Jul 2016 20:39:13 +0200\n"
    )
    assert filter_changelog_text(NEW_ENTRY + older) == NEW_ENTRY_FILTERED + older


def test_carriage_returns_dropped_at_line_end():
    assert filter_changelog_text("a\r\n\r\n\r\nb\r\n") == "a\n\nb\n"


def test_latin1_older_entry_kept_byte_for_byte(tmp_path):
    older = (
        b"pkg (1.0) unstable; urgency=low\n"
        b"\n"
        b"  * Thanks to J\xf6rg\n"
        b"\n"
        b" -- J\xf6rg <j@x>  Fri, 15 Jul 2016 20:39:13 +0200\n"
    )
    path = tmp_path / "changelog"
    path.write_bytes(NEW_ENTRY.encode() + older)

    filter_changelog(path)

    assert path.read_bytes() == NEW_ENTRY_FILTERED.encode() + older
