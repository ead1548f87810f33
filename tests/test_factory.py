import pytest

from emailops.adapters.beehiiv import BeehiivAdapter
from emailops.adapters.constant_contact import ConstantContactAdapter
from emailops.adapters.factory import (
    create_platform_adapter,
    get_required_credentials,
    get_supported_platforms,
    is_platform_implemented,
    is_platform_supported,
    validate_credentials,
)
from emailops.adapters.mailchimp import MailchimpAdapter
from emailops.adapters.servicetitan import ServiceTitanAdapter
from emailops.core.exceptions import ValidationError


class TestPlatformTables:
    def test_eight_platforms_supported(self):
        assert len(get_supported_platforms()) == 8

    def test_aliases_and_case(self):
        assert is_platform_supported("mailchimp")
        assert is_platform_supported("ConstantContact")
        assert not is_platform_supported("SENDGRID")

    def test_servicetitan_is_supported_but_not_implemented(self):
        assert is_platform_supported("SERVICETITAN")
        assert not is_platform_implemented("SERVICETITAN")

    def test_required_credentials(self):
        assert get_required_credentials("ACTIVECAMPAIGN") == ["apiKey", "accountUrl"]
        assert get_required_credentials("unknown") == []


class TestValidateCredentials:
    def test_complete_bag_passes(self):
        validate_credentials("BEEHIIV", {"apiKey": "k", "accountId": "pub_1"})

    def test_missing_fields_are_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_credentials("CONSTANT_CONTACT", {"accessToken": "a", "clientId": " "})
        assert exc_info.value.details["missing"] == ["refreshToken", "clientId", "clientSecret"]

    def test_unsupported_platform(self):
        with pytest.raises(ValidationError):
            validate_credentials("SENDGRID", {"apiKey": "k"})


class TestCreatePlatformAdapter:
    @pytest.mark.parametrize(
        "platform,credentials,adapter_class",
        [
            ("MAILCHIMP", {"apiKey": "abc-us6"}, MailchimpAdapter),
            ("constantcontact", {"accessToken": "t", "refreshToken": "r", "clientId": "c", "clientSecret": "s"},
             ConstantContactAdapter),
            ("BEEHIIV", {"apiKey": "k", "accountId": "pub_1"}, BeehiivAdapter),
            ("SERVICETITAN", {}, ServiceTitanAdapter),
        ],
    )
    def test_builds_adapter(self, platform, credentials, adapter_class):
        adapter = create_platform_adapter("client-1", platform, credentials)
        assert isinstance(adapter, adapter_class)
        assert adapter.client_id == "client-1"

    def test_unsupported_platform(self):
        with pytest.raises(ValidationError):
            create_platform_adapter("client-1", "SENDGRID", {})
