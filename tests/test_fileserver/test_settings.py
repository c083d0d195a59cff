"""Tests for settings read from the environment."""

from django.conf import settings


def test_allowed_hosts_are_a_list():
    """Test comma separated hosts become a list of trimmed names."""
    assert isinstance(settings.ALLOWED_HOSTS, list)
    assert all(host == host.strip() for host in settings.ALLOWED_HOSTS)
    assert '' not in settings.ALLOWED_HOSTS
