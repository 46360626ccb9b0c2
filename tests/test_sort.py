from aptcache import Cache, PackageSort


def test_default_sort_excludes_virtual(cache: Cache):
    packages = list(cache.packages(PackageSort()))
    assert packages
    assert all(pkg.has_versions for pkg in packages)
    assert packages == list(cache.packages())


def test_include_virtual(cache: Cache):
    packages = list(cache.packages(PackageSort().include_virtual()))
    assert any(pkg.has_versions for pkg in packages)
    assert any(not pkg.has_versions for pkg in packages)


def test_only_virtual(cache: Cache):
    names = {pkg.name for pkg in cache.packages(PackageSort().only_virtual())}
    assert names
    assert {"www-browser", "gnome-www-browser", "synaptic"} <= names
    assert "apt" not in names


def test_upgradable_is_consistent(cache: Cache):
    upgradable = list(cache.packages(PackageSort().upgradable()))
    assert {pkg.name for pkg in upgradable} == {"apt", "libapt-pkg6.0"}
    for pkg in upgradable:
        assert pkg.is_upgradable(False)
        assert pkg.is_upgradable(skip_depcache=True)
    for pkg in cache.packages(PackageSort().not_upgradable()):
        assert not pkg.is_upgradable(False)


def test_installed(cache: Cache):
    installed = {pkg.name for pkg in cache.packages(PackageSort().installed())}
    assert installed == {
        "apt",
        "libapt-pkg6.0",
        "libc6",
        "gpgv",
        "debian-archive-keyring",
        "lynx",
        "libfoo1",
        "local-tool",
    }
    not_installed = {pkg.name for pkg in cache.packages(PackageSort().not_installed())}
    assert not installed & not_installed
    assert "firefox-esr" in not_installed


def test_auto_installed(cache: Cache):
    auto = {pkg.name for pkg in cache.packages(PackageSort().auto_installed())}
    assert auto == {"libapt-pkg6.0", "libc6", "gpgv", "debian-archive-keyring", "libfoo1"}
    for pkg in cache.packages(PackageSort().manually_installed()):
        assert not pkg.is_auto_installed


def test_auto_removable(cache: Cache):
    removable = list(cache.packages(PackageSort().auto_removable()))
    assert [pkg.name for pkg in removable] == ["libfoo1"]
    for pkg in removable:
        assert pkg.is_auto_removable
    for pkg in cache.packages(PackageSort().not_auto_removable()):
        assert not pkg.is_auto_removable


def test_last_toggle_wins(cache: Cache):
    sort = PackageSort().upgradable().not_upgradable()
    assert all(not pkg.is_upgradable() for pkg in cache.packages(sort))

    sort = PackageSort().only_virtual().include_virtual()
    assert any(pkg.has_versions for pkg in cache.packages(sort))


def test_sort_is_immutable():
    base = PackageSort()
    installed = base.installed()
    assert base != installed
    assert base == PackageSort()


def test_iteration_is_lazy_and_restartable(cache: Cache):
    sort = PackageSort().installed()
    first = next(iter(cache.packages(sort)))
    assert first.is_installed
    assert list(cache.packages(sort)) == list(cache.packages(sort))


def test_names_order(cache: Cache):
    names = [pkg.name for pkg in cache.packages(PackageSort().names())]
    assert names == sorted(names)
