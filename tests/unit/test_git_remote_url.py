"""Tests for repo_fleet.git.remote_url."""

import pytest

from repo_fleet.enums import RemoteProtocol
from repo_fleet.git.exceptions import InvalidRemoteUrlError
from repo_fleet.git.remote_url import RemoteUrl, parse_remote_url


class TestRemoteUrlParse:
    """Tests for remote URL parsing."""

    def test_scp_style_ssh(self):
        """Test git@host:owner/repo.git."""
        url = RemoteUrl.parse("git@github.com:acme/api.git")

        assert url.protocol == RemoteProtocol.SSH
        assert url.host == "github.com"
        assert url.full_name == "acme/api"
        assert url.user == "git"

    def test_ssh_scheme_with_port(self):
        """Test ssh:// URLs keep their port."""
        url = RemoteUrl.parse("ssh://git@gitea.example.com:2222/acme/api.git")

        assert url.protocol == RemoteProtocol.SSH
        assert url.port == 2222
        assert url.repo == "api"

    def test_https_with_port_and_no_suffix(self):
        """Test HTTPS URLs with an explicit port and no .git."""
        url = RemoteUrl.parse("https://gitea.example.com:3000/acme/api")

        assert url.protocol == RemoteProtocol.HTTPS
        assert url.port == 3000
        assert url.full_name == "acme/api"

    def test_nested_group(self):
        """Test subgroup paths become the owner."""
        url = RemoteUrl.parse("https://gitlab.com/group/sub/project.git")

        assert url.owner == "group/sub"
        assert url.repo == "project"

    def test_credentials_are_ignored(self):
        """Test user info in HTTPS URLs does not leak into the owner."""
        url = RemoteUrl.parse("https://token@github.com/acme/api.git")

        assert url.full_name == "acme/api"

    @pytest.mark.parametrize("value", ["", "not a url", "https://github.com/only-owner", "file:///tmp/repo"])
    def test_invalid(self, value):
        """Test unrecognized URLs raise InvalidRemoteUrlError."""
        with pytest.raises(InvalidRemoteUrlError):
            RemoteUrl.parse(value)


class TestRemoteUrlConversion:
    """Tests for protocol conversion."""

    def test_https_to_ssh(self):
        """Test HTTPS converts to scp-style SSH."""
        url = RemoteUrl.parse("https://github.com/acme/api.git")

        assert url.to_protocol(RemoteProtocol.SSH) == "git@github.com:acme/api.git"

    def test_ssh_to_https(self):
        """Test SSH converts to HTTPS without the SSH port."""
        url = RemoteUrl.parse("ssh://git@github.com:22/acme/api.git")

        assert url.to_protocol(RemoteProtocol.HTTPS) == "https://github.com/acme/api.git"

    def test_https_port_kept(self):
        """Test HTTPS ports survive a same-protocol render."""
        url = RemoteUrl.parse("https://gitea.example.com:3000/acme/api")

        assert url.https_url == "https://gitea.example.com:3000/acme/api.git"


class TestWithFullName:
    """Tests for pointing a remote at a renamed repository."""

    @pytest.mark.parametrize(
        ("original", "expected"),
        [
            ("git@github.com:acme/api.git", "git@github.com:acme-platform/api-service.git"),
            ("https://github.com/acme/api", "https://github.com/acme-platform/api-service"),
            ("ssh://git@github.com:2222/acme/api.git", "ssh://git@github.com:2222/acme-platform/api-service.git"),
        ],
    )
    def test_keeps_url_shape(self, original, expected):
        """Test only the owner/name part of the URL changes."""
        assert RemoteUrl.parse(original).with_full_name("acme-platform/api-service") == expected

    def test_rejects_bare_name(self):
        """Test a name without an owner is refused."""
        with pytest.raises(InvalidRemoteUrlError):
            RemoteUrl.parse("git@github.com:acme/api.git").with_full_name("api")


class TestParseRemoteUrl:
    """Tests for the lenient helper."""

    def test_none_for_missing_or_invalid(self):
        """Test empty and invalid input yield None."""
        assert parse_remote_url(None) is None
        assert parse_remote_url("   ") is None
        assert parse_remote_url("nonsense") is None

    def test_parses_valid(self):
        """Test valid URLs parse."""
        assert parse_remote_url("git@github.com:acme/api").repo == "api"
