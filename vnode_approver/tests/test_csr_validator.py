"""Tests for csr_validator module."""

import pytest

from vnode_approver.lib.csr_validator import (
    COMMON_NAME_NOT_SYSTEM_VNODE,
    DNS_SAN_NOT_ALLOWED,
    EMAIL_SAN_NOT_ALLOWED,
    IP_SAN_NOT_ALLOWED,
    ORGANIZATION_NOT_SYSTEM_VNODES,
    URI_SAN_NOT_ALLOWED,
    USAGES_MISMATCH,
    is_vnode_client_csr,
    validate_vnode_client_csr,
)
from vnode_approver.lib.models import (
    USAGE_CLIENT_AUTH,
    USAGE_DIGITAL_SIGNATURE,
    USAGE_KEY_ENCIPHERMENT,
    USAGE_SERVER_AUTH,
)

REQUIRED = {USAGE_DIGITAL_SIGNATURE, USAGE_KEY_ENCIPHERMENT, USAGE_CLIENT_AUTH}


class TestValidateVNodeClientCSR:
    """Tests for validate_vnode_client_csr."""

    def test_valid_request(self, x509_factory) -> None:
        """The exact vnode client shape passes."""
        assert validate_vnode_client_csr(x509_factory(), REQUIRED) == (True, "")

    def test_usages_accept_any_iterable(self, x509_factory) -> None:
        """Usage order and duplicates do not matter."""
        usages = [USAGE_CLIENT_AUTH, USAGE_DIGITAL_SIGNATURE, USAGE_KEY_ENCIPHERMENT, USAGE_CLIENT_AUTH]

        assert validate_vnode_client_csr(x509_factory(), usages) == (True, "")

    @pytest.mark.parametrize(
        "organizations",
        [["other-org"], [], ["system:vnodes", "system:masters"], ["system:vnodes", "system:vnodes"]],
    )
    def test_organization_must_match_exactly(self, x509_factory, organizations) -> None:
        """Anything other than exactly [system:vnodes] fails."""
        req = x509_factory(organizations=organizations)

        assert validate_vnode_client_csr(req, REQUIRED) == (False, ORGANIZATION_NOT_SYSTEM_VNODES)

    def test_other_org_fails_regardless_of_cn_and_usages(self, x509_factory) -> None:
        """Organization is checked before the other fields."""
        req = x509_factory(organizations=["other-org"], common_name="bad-cn")

        assert validate_vnode_client_csr(req, {USAGE_SERVER_AUTH}) == (
            False,
            ORGANIZATION_NOT_SYSTEM_VNODES,
        )

    @pytest.mark.parametrize(
        ("san_kwargs", "reason"),
        [
            ({"dns_names": ["worker-1.local"]}, DNS_SAN_NOT_ALLOWED),
            ({"emails": ["worker-1@example.com"]}, EMAIL_SAN_NOT_ALLOWED),
            ({"ips": ["192.168.0.10"]}, IP_SAN_NOT_ALLOWED),
            ({"uris": ["spiffe://cluster/worker-1"]}, URI_SAN_NOT_ALLOWED),
        ],
    )
    def test_subject_alt_names_not_allowed(self, x509_factory, san_kwargs, reason) -> None:
        """Any SAN is rejected."""
        req = x509_factory(**san_kwargs)

        assert validate_vnode_client_csr(req, REQUIRED) == (False, reason)

    def test_common_name_prefix(self, x509_factory) -> None:
        """The CN must begin with system:vnode."""
        req = x509_factory(common_name="system:node:worker-1")

        assert validate_vnode_client_csr(req, REQUIRED) == (False, COMMON_NAME_NOT_SYSTEM_VNODE)

    def test_usage_superset_fails(self, x509_factory) -> None:
        """Adding server auth to the required usages fails."""
        usages = REQUIRED | {USAGE_SERVER_AUTH}

        assert validate_vnode_client_csr(x509_factory(), usages) == (False, USAGES_MISMATCH)

    def test_usage_subset_fails(self, x509_factory) -> None:
        """Dropping key encipherment fails."""
        usages = {USAGE_DIGITAL_SIGNATURE, USAGE_CLIENT_AUTH}

        assert validate_vnode_client_csr(x509_factory(), usages) == (False, USAGES_MISMATCH)

    def test_is_vnode_client_csr(self, x509_factory) -> None:
        """Boolean wrapper mirrors the validation result."""
        assert is_vnode_client_csr(x509_factory(), REQUIRED)
        assert not is_vnode_client_csr(x509_factory(dns_names=["a.local"]), REQUIRED)
