from registry_api.domain.versions import (
    is_valid_package_name,
    is_valid_version,
    select_latest,
    sort_versions,
)


def test_sort_follows_semver_precedence():
    versions = ["1.0.0", "1.0.0-beta.2", "0.9.12", "1.0.0-beta.10", "1.0.0-alpha", "1.10.0", "1.2.0"]
    assert sort_versions(versions) == [
        "0.9.12",
        "1.0.0-alpha",
        "1.0.0-beta.2",
        "1.0.0-beta.10",
        "1.0.0",
        "1.2.0",
        "1.10.0",
    ]


def test_latest_prefers_stable_releases():
    assert select_latest(["1.0.0", "2.0.0-dev.1"]) == "1.0.0"
    assert select_latest(["2.0.0-dev.1", "2.0.0-dev.2"]) == "2.0.0-dev.2"
    assert select_latest([]) is None


def test_latest_skips_retracted_unless_nothing_else():
    assert select_latest(["1.0.0", "1.1.0"], excluded=["1.1.0"]) == "1.0.0"
    assert select_latest(["1.1.0"], excluded=["1.1.0"]) == "1.1.0"


def test_name_and_version_rules():
    assert is_valid_package_name("http_client2")
    assert not is_valid_package_name("HttpClient")
    assert not is_valid_package_name("2fast")
    assert not is_valid_package_name("../etc")
    assert is_valid_version("1.2.3+build.5")
    assert not is_valid_version("1.2")
    assert not is_valid_version("01.2.3")


def test_versions_longer_than_the_column_are_invalid():
    assert is_valid_version("1.0.0-" + "a" * 58)
    assert not is_valid_version("1.0.0-" + "a" * 59)
    assert not is_valid_version("1.0.0+" + "b" * 200)
