from pathlib import Path

import pytest

from aptcache import Configuration, MetadataError
from aptcache.sources import SourceList, parse_deb822, parse_one_line

LIST = Path("/etc/apt/sources.list")


def test_one_line_entries():
    text = (
        "# the main archive\n"
        "deb http://deb.example.org/debian sid main contrib  # trailing comment\n"
        "\n"
        "deb [arch=amd64,i386 trusted=yes] http://local.example.org/repo stable main\n"
        "deb-src http://deb.example.org/debian sid main\n"
    )
    entries = parse_one_line(text, LIST)
    assert [str(entry) for entry in entries] == [
        "deb http://deb.example.org/debian sid main contrib",
        "deb http://local.example.org/repo stable main",
        "deb-src http://deb.example.org/debian sid main",
    ]
    assert entries[0].line == 2
    assert entries[0].file == LIST
    assert not entries[0].trusted
    assert entries[1].architectures == ["amd64", "i386"]
    assert entries[1].trusted
    assert not entries[2].is_binary


@pytest.mark.parametrize(
    "line",
    [
        "deb http://deb.example.org/debian",
        "deb http://deb.example.org/debian sid",
        "rpm http://deb.example.org/debian sid main",
        "deb [arch] http://deb.example.org/debian sid main",
    ],
)
def test_malformed_one_line_entries(line: str):
    with pytest.raises(MetadataError):
        parse_one_line(line + "\n", LIST)


def test_deb822_expands_stanzas():
    text = (
        "Types: deb deb-src\n"
        "URIs: http://deb.example.org/debian\n"
        "Suites: sid experimental\n"
        "Components: main\n"
        "Architectures: amd64\n"
        "\n"
        "Types: deb\n"
        "URIs: http://off.example.org/debian\n"
        "Suites: sid\n"
        "Components: main\n"
        "Enabled: no\n"
    )
    entries = parse_deb822(text, Path("debian.sources"))
    assert [(entry.type, entry.suite) for entry in entries] == [
        ("deb", "sid"),
        ("deb", "experimental"),
        ("deb-src", "sid"),
        ("deb-src", "experimental"),
    ]
    assert all(entry.architectures == ["amd64"] for entry in entries)
    assert all(entry.line == 1 for entry in entries)


def test_deb822_requires_uris():
    with pytest.raises(MetadataError):
        parse_deb822("Types: deb\nSuites: sid\nComponents: main\n", Path("broken.sources"))


def test_flat_repository():
    (entry,) = parse_one_line("deb http://flat.example.org/repo ./\n", LIST)
    assert entry.is_flat
    assert entry.dist_uri == "http://flat.example.org/repo/"
    assert entry.release_uris() == ["http://flat.example.org/repo/InRelease", "http://flat.example.org/repo/Release"]

    sources = SourceList([entry], ["amd64", "i386"])
    (target,) = sources.index_targets()
    assert target.uri == "http://flat.example.org/repo/Packages"
    assert target.filename == "flat.example.org_repo_Packages"


def test_index_targets_per_component_and_arch():
    entries = parse_one_line(
        "deb http://deb.example.org/debian sid main contrib\n"
        "deb [arch=i386] http://deb.example.org/debian stable main\n"
        "deb-src http://deb.example.org/debian sid main\n",
        LIST,
    )
    sources = SourceList(entries, ["amd64", "i386"])
    assert [target.release_key for target in sources.index_targets()] == [
        "main/binary-amd64/Packages",
        "main/binary-i386/Packages",
        "contrib/binary-amd64/Packages",
        "contrib/binary-i386/Packages",
        "main/binary-i386/Packages",
    ]
    first = next(sources.index_targets())
    assert first.filename == "deb.example.org_debian_dists_sid_main_binary-amd64_Packages"
    assert first.description == "http://deb.example.org/debian sid/main amd64 Packages"


def test_entry_architectures_are_limited_to_configured_ones():
    (entry,) = parse_one_line("deb [arch=arm64] http://deb.example.org/debian sid main\n", LIST)
    sources = SourceList([entry], ["amd64"])
    assert list(sources.index_targets()) == []


def test_read_merges_parts_directory(root: Path, config: Configuration):
    parts = root / "etc/apt/sources.list.d"
    parts.mkdir(parents=True, exist_ok=True)
    (parts / "extra.sources").write_text(
        "Types: deb\nURIs: http://extra.example.org/debian\nSuites: sid\nComponents: main\n"
    )
    (parts / "ignored.txt").write_text("not a source list")

    sources = SourceList.read(config)
    assert [entry.uri for entry in sources] == [
        "http://deb.example.org/debian",
        "http://deb.example.org/debian",
        "http://extra.example.org/debian",
    ]
    assert len(sources.binary_entries) == 2


def test_source_files(config: Configuration):
    files = list(SourceList.read(config).source_files())
    assert files[0].uri == "http://deb.example.org/debian/dists/sid/InRelease"
    assert files[0].filename == "deb.example.org_debian_dists_sid_InRelease"
    assert [f.filename for f in files[1:]] == [
        "deb.example.org_debian_dists_sid_main_binary-amd64_Packages",
        "deb.example.org_debian_dists_sid_contrib_binary-amd64_Packages",
    ]
